"""Pick, install and attach to a terminal multiplexer inside a session container.

Per connection::

    DetectPreference -> EnsureInstalled -> AttachOrCreate

Every cowork session name maps to exactly one multiplexer session, so
connecting twice lands in the same place.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

from cowork.errors import MultiplexerInstallFailed, NoPackageManager, UnsupportedArchitecture
from cowork.logger import logger
from cowork.settings.models import Multiplexer
from cowork.tools.runtime import ContainerRuntime

ZELLIJ_VERSION = "0.39.2"
ZELLIJ_ARCHES = {"x86_64": "x86_64", "aarch64": "aarch64", "arm64": "aarch64"}
ZELLIJ_URL = (
    "https://github.com/zellij-org/zellij/releases/download/"
    "v{version}/zellij-{arch}-unknown-linux-musl.tar.gz"
)

# Probe order matters: first package manager found wins
PACKAGE_MANAGERS = [
    ("apt-get", "sudo apt-get update && sudo apt-get install -y {package}"),
    ("yum", "sudo yum install -y {package}"),
    ("apk", "sudo apk add --no-cache {package}"),
]

SHELL = "/bin/bash"


@dataclass(frozen=True)
class MultiplexerCommands:
    """Argv templates for one session-oriented multiplexer."""

    binary: str
    list_sessions: list[str]
    attach: list[str]
    create: list[str]

    def render(self, argv: list[str], name: str) -> list[str]:
        return [part.format(name=name) for part in argv]


def session_target(multiplexer: Multiplexer, name: str) -> str:
    """The name the multiplexer actually stores for *name*.

    tmux rewrites "." and ":" to "_" in session names.
    """
    if multiplexer is Multiplexer.TMUX:
        return name.replace(".", "_").replace(":", "_")
    return name


COMMANDS = {
    Multiplexer.TMUX: MultiplexerCommands(
        binary="tmux",
        list_sessions=["tmux", "list-sessions", "-F", "#{session_name}"],
        attach=["tmux", "attach-session", "-t", "={name}"],
        create=["tmux", "new-session", "-s", "{name}"],
    ),
    Multiplexer.ZELLIJ: MultiplexerCommands(
        binary="zellij",
        list_sessions=["zellij", "list-sessions", "--short", "--no-formatting"],
        attach=["zellij", "attach", "{name}"],
        create=["zellij", "--session", "{name}"],
    ),
}


def is_installed(runtime: ContainerRuntime, session_dir: Path, multiplexer: Multiplexer) -> bool:
    if multiplexer is Multiplexer.NONE:
        return True
    result = runtime.exec_capture(session_dir, ["which", COMMANDS[multiplexer].binary])
    return result.returncode == 0


def detect_preference(
    runtime: ContainerRuntime,
    session_dir: Path,
    override: Multiplexer | None = None,
    configured: Multiplexer | None = None,
) -> Multiplexer:
    """Override, then configured preference, then whatever the container already has."""
    if override is not None:
        return override
    if configured is not None:
        return configured
    for candidate in (Multiplexer.TMUX, Multiplexer.ZELLIJ):
        try:
            if is_installed(runtime, session_dir, candidate):
                return candidate
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("Multiplexer probe failed", multiplexer=candidate.value, error=str(exc))
            break
    return Multiplexer.NONE


def detect_package_manager(runtime: ContainerRuntime, session_dir: Path) -> tuple[str, str]:
    for binary, template in PACKAGE_MANAGERS:
        if runtime.exec_capture(session_dir, ["which", binary]).returncode == 0:
            return binary, template
    raise NoPackageManager("No supported package manager found in the container (apt-get, yum, apk)")


def zellij_install_script(arch: str) -> str:
    url = ZELLIJ_URL.format(version=ZELLIJ_VERSION, arch=arch)
    return (
        "set -e; "
        'tmp="$(mktemp -d)"; '
        f'curl -fsSL "{url}" -o "$tmp/zellij.tar.gz"; '
        'tar -xzf "$tmp/zellij.tar.gz" -C "$tmp"; '
        'sudo mv "$tmp/zellij" /usr/local/bin/zellij; '
        "sudo chmod +x /usr/local/bin/zellij; "
        'rm -rf "$tmp"; '
        "command -v zellij >/dev/null"
    )


def _install_tmux(runtime: ContainerRuntime, session_dir: Path) -> None:
    manager, template = detect_package_manager(runtime, session_dir)
    logger.info("Installing tmux", package_manager=manager)
    command = template.format(package="tmux")
    if runtime.exec_interactive(session_dir, ["bash", "-c", command]) != 0:
        raise MultiplexerInstallFailed(f"Failed to install tmux with {manager}")


def _install_zellij(runtime: ContainerRuntime, session_dir: Path) -> None:
    machine = runtime.exec_capture(session_dir, ["uname", "-m"]).stdout.strip()
    arch = ZELLIJ_ARCHES.get(machine)
    if arch is None:
        raise UnsupportedArchitecture(machine or "unknown")
    logger.info("Installing zellij", version=ZELLIJ_VERSION, arch=arch)
    if runtime.exec_interactive(session_dir, ["bash", "-c", zellij_install_script(arch)]) != 0:
        raise MultiplexerInstallFailed("Failed to install zellij")


def ensure_installed(runtime: ContainerRuntime, session_dir: Path, multiplexer: Multiplexer) -> bool:
    """Install *multiplexer* if the container lacks it. Returns True if an install ran."""
    if is_installed(runtime, session_dir, multiplexer):
        return False
    if multiplexer is Multiplexer.TMUX:
        _install_tmux(runtime, session_dir)
    else:
        _install_zellij(runtime, session_dir)
    return True


def has_session(runtime: ContainerRuntime, session_dir: Path, multiplexer: Multiplexer, name: str) -> bool:
    commands = COMMANDS[multiplexer]
    result = runtime.exec_capture(session_dir, commands.list_sessions)
    if result.returncode != 0:
        # tmux exits non-zero when no server is running yet
        return False
    return name in {line.strip() for line in result.stdout.splitlines()}


def attach_or_create(
    runtime: ContainerRuntime,
    session_dir: Path,
    session_name: str,
    multiplexer: Multiplexer,
) -> int:
    """Attach to the named multiplexer session, creating it only if absent."""
    if multiplexer is Multiplexer.NONE:
        return runtime.exec_interactive(session_dir, [SHELL])

    commands = COMMANDS[multiplexer]
    target = session_target(multiplexer, session_name)
    if has_session(runtime, session_dir, multiplexer, target):
        logger.info("Attaching to existing session", multiplexer=multiplexer.value, session=target)
        argv = commands.render(commands.attach, target)
    else:
        logger.info("Creating new session", multiplexer=multiplexer.value, session=target)
        argv = commands.render(commands.create, target)
    return runtime.exec_interactive(session_dir, argv)


def connect(
    runtime: ContainerRuntime,
    session_dir: Path,
    session_name: str,
    override: Multiplexer | None = None,
    configured: Multiplexer | None = None,
) -> int:
    multiplexer = detect_preference(runtime, session_dir, override, configured)
    ensure_installed(runtime, session_dir, multiplexer)
    return attach_or_create(runtime, session_dir, session_name, multiplexer)
