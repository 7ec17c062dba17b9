"""Git operations Cowork delegates to the git CLI."""

from __future__ import annotations

import subprocess
from pathlib import Path

from cowork.logger import logger


class GitCommandError(Exception):
    """Raised when a git command fails."""

    def __init__(self, command: str, stderr: str, returncode: int) -> None:
        self.command = command
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(f"git {command} failed (exit {returncode}): {stderr}")


def run_git(*args: str, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    """Run a git command with output captured. No timeout: clones can be slow."""
    return subprocess.run(
        ["git", *args],
        cwd=str(cwd) if cwd else None,
        capture_output=True,
        text=True,
    )


def require_success(result: subprocess.CompletedProcess[str], command: str) -> str:
    """Return stripped stdout, or raise GitCommandError."""
    if result.returncode != 0:
        raise GitCommandError(command, result.stderr.strip(), result.returncode)
    return result.stdout.strip()


class Git:
    """The version control collaborator used by the session registry."""

    def repository_root(self, cwd: Path) -> Path | None:
        try:
            result = run_git("rev-parse", "--show-toplevel", cwd=cwd)
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug("repository_root failed", error=str(exc), cwd=str(cwd))
            return None
        if result.returncode != 0 or not result.stdout.strip():
            return None
        return Path(result.stdout.strip())

    def remote_origin_url(self, cwd: Path) -> str | None:
        result = run_git("config", "--get", "remote.origin.url", cwd=cwd)
        url = result.stdout.strip() if result.returncode == 0 else ""
        return url or None

    def clone(self, url: str, destination: Path) -> None:
        destination.parent.mkdir(parents=True, exist_ok=True)
        require_success(run_git("clone", url, str(destination)), "clone")

    def create_or_checkout_branch(self, directory: Path, name: str) -> None:
        """Create *name* if missing, otherwise switch to it."""
        result = run_git("checkout", "-b", name, cwd=directory)
        if result.returncode == 0:
            return
        logger.debug("Branch exists, checking out", branch=name, stderr=result.stderr.strip())
        require_success(run_git("checkout", name, cwd=directory), f"checkout {name}")

    def current_branch(self, directory: Path) -> str | None:
        try:
            result = run_git("branch", "--show-current", cwd=directory)
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug("current_branch failed", error=str(exc), cwd=str(directory))
            return None
        branch = result.stdout.strip() if result.returncode == 0 else ""
        return branch or None
