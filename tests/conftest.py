"""Shared fixtures: fake git and container runtime collaborators."""

import json
import subprocess
from pathlib import Path

import pytest

from cowork.config import CoworkPaths, ensure_dirs
from cowork.devcontainer.templates import DEFAULT_DEVCONTAINER


def _completed(command, returncode=0, stdout=""):
    return subprocess.CompletedProcess(command, returncode, stdout=stdout, stderr="")


class FakeGit:
    """In-memory stand-in for the git CLI. Clones are plain directories."""

    def __init__(self, root: Path | None, origin: str | None = "git@github.com:acme/My_App.git"):
        self.root = root
        self.origin = origin
        self.devcontainer: dict | None = DEFAULT_DEVCONTAINER
        self.clones: list[tuple[str, Path]] = []
        self.branches: dict[Path, str] = {}

    def repository_root(self, cwd):
        return self.root

    def remote_origin_url(self, cwd):
        return self.origin

    def clone(self, url, destination):
        destination.mkdir(parents=True)
        (destination / ".git").mkdir()
        if self.devcontainer is not None:
            spec = destination / ".devcontainer" / "devcontainer.json"
            spec.parent.mkdir()
            spec.write_text(json.dumps(self.devcontainer))
        self.clones.append((url, destination))
        self.branches[destination] = "main"

    def create_or_checkout_branch(self, directory, name):
        self.branches[directory] = name

    def current_branch(self, directory):
        return self.branches.get(directory)


class FakeRuntime:
    """Simulates devcontainer/docker plus the multiplexers inside containers."""

    def __init__(self):
        self.running: dict[Path, str] = {}
        self.binaries: set[str] = {"apt-get"}
        self.tmux_sessions: set[str] = set()
        self.zellij_sessions: set[str] = set()
        self.machine = "x86_64"
        self.login_returncode = 0
        self.credential_archive = b""
        self.fail_up = False
        self.interactive: list[list[str]] = []
        self.ups: list[Path] = []
        self.stopped: list[str] = []
        self.removed: list[str] = []
        self.events: list[str] = []
        self.queries = 0

    def require(self):
        return None

    def up(self, directory):
        from cowork.errors import ContainerStartFailed

        if self.fail_up:
            raise ContainerStartFailed("devcontainer up failed")
        self.ups.append(directory)
        self.running[directory] = f"container-{len(self.ups)}"

    def running_containers(self):
        self.queries += 1
        return dict(self.running)

    def stop(self, container_id):
        self.events.append(f"stop {container_id}")
        self.stopped.append(container_id)
        self.running = {k: v for k, v in self.running.items() if v != container_id}

    def remove(self, container_id):
        self.removed.append(container_id)

    def docker_available(self):
        return True

    def cli_version(self):
        return "0.60.0"

    def exec_capture(self, directory, command):
        if command[0] == "which":
            return _completed(command, 0 if command[1] in self.binaries else 1)
        if command[:2] == ["tmux", "list-sessions"]:
            if not self.tmux_sessions:
                return _completed(command, 1)
            return _completed(command, 0, "\n".join(sorted(self.tmux_sessions)) + "\n")
        if command[:2] == ["zellij", "list-sessions"]:
            return _completed(command, 0, "\n".join(sorted(self.zellij_sessions)))
        if command == ["uname", "-m"]:
            return _completed(command, 0, self.machine + "\n")
        return _completed(command)

    def exec_bytes(self, directory, command):
        return subprocess.CompletedProcess(command, 0, stdout=self.credential_archive, stderr=b"")

    def exec_interactive(self, directory, command):
        self.interactive.append(list(command))
        if command == ["claude", "login"]:
            return self.login_returncode
        if command[:2] == ["tmux", "new-session"]:
            # tmux stores "." and ":" as "_"
            self.tmux_sessions.add(command[-1].replace(".", "_").replace(":", "_"))
        elif command[:2] == ["zellij", "--session"]:
            self.zellij_sessions.add(command[-1])
        elif command[:2] == ["bash", "-c"]:
            if "install -y tmux" in command[2] or "add --no-cache tmux" in command[2]:
                self.binaries.add("tmux")
            elif "zellij" in command[2]:
                self.binaries.add("zellij")
        return 0


@pytest.fixture
def paths(tmp_path):
    p = CoworkPaths(root=tmp_path / "home" / ".cowork")
    ensure_dirs(p)
    return p


@pytest.fixture
def project_root(tmp_path):
    root = tmp_path / "My_App"
    root.mkdir()
    return root


@pytest.fixture
def fake_git(project_root):
    return FakeGit(project_root)


@pytest.fixture
def fake_runtime():
    return FakeRuntime()


@pytest.fixture
def credentials(paths):
    """A valid bundle already in the canonical directory."""
    bundle = paths.auth_dir / ".credentials.json"
    bundle.write_text(json.dumps({"claudeAiOauth": {"accessToken": "x" * 200}}))
    return bundle
