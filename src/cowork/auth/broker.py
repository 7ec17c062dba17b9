"""Credential broker: one shared credential bundle for every session.

Lifecycle::

    Absent -> Discovered -> (Valid | Stale) -> Centralized

The canonical copy lives in ~/.cowork/auth and is bind-mounted into each
session container at /home/vscode/.claude. It is never copied per session.
"""

from __future__ import annotations

import io
import json
import os
import shutil
import tarfile
import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path, PurePosixPath

from cowork.config import CoworkPaths
from cowork.devcontainer.templates import AUTH_BOOTSTRAP_DEVCONTAINER, CONTAINER_AUTH_PATH
from cowork.errors import ContainerStartFailed, ContainerStopFailed, CredentialBootstrapFailed
from cowork.logger import logger
from cowork.tools.runtime import ContainerRuntime

MIN_CREDENTIAL_BYTES = 100
FRESHNESS_WINDOW = timedelta(days=30)

# tar member "home/vscode/.claude/x" -> "x", so auth_dir mirrors the mount target
EXTRACT_STRIP_COMPONENTS = len(PurePosixPath(CONTAINER_AUTH_PATH).parts) - 1


class CredentialState(str, Enum):
    VALID = "valid"
    STALE = "stale"
    INVALID = "invalid"


@dataclass
class AuthOutcome:
    """What `authenticate` ended up doing."""

    state: CredentialState
    source: Path | None = None
    centralized: bool = False
    bootstrapped: bool = False


def legacy_files(home: Path) -> list[Path]:
    """Credential files from older setups, in probe order."""
    return [
        home / ".credentials.json",
        home / ".claude" / "credentials.json",
        home / ".anthropic" / "credentials.json",
        home / ".claude.json",
    ]


def _credential_files(directory: Path) -> list[Path]:
    return sorted(p for p in directory.rglob("*.json") if p.is_file())


def discover(home: Path) -> Path | None:
    """First existing legacy location; files before the ~/.claude folder scan."""
    for path in legacy_files(home):
        if path.is_file():
            return path
    folder = home / ".claude"
    if folder.is_dir() and _credential_files(folder):
        return folder
    return None


def _newest_mtime(path: Path) -> float:
    if path.is_dir():
        return max((p.stat().st_mtime for p in _credential_files(path)), default=path.stat().st_mtime)
    return path.stat().st_mtime


def validate(path: Path | None, now: datetime | None = None) -> CredentialState:
    """Classify a credential location.

    Invalid when missing, when a file is under MIN_CREDENTIAL_BYTES, or when
    a directory holds no credential files. Stale (a warning, not a failure)
    when older than FRESHNESS_WINDOW.
    """
    if path is None or not path.exists():
        return CredentialState.INVALID
    if path.is_dir():
        if not _credential_files(path):
            return CredentialState.INVALID
    elif path.stat().st_size < MIN_CREDENTIAL_BYTES:
        return CredentialState.INVALID

    now = now or datetime.now()
    age = now - datetime.fromtimestamp(_newest_mtime(path))
    if age > FRESHNESS_WINDOW:
        logger.warning("Credentials may be expired", path=str(path), age_days=age.days)
        return CredentialState.STALE
    return CredentialState.VALID


def tighten_permissions(root: Path) -> None:
    """Owner-only access: 0700 directories, 0600 files. Links are never followed."""
    root.chmod(0o700)
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames:
            path = os.path.join(dirpath, name)
            if not os.path.islink(path):
                os.chmod(path, 0o700)
        for name in filenames:
            path = os.path.join(dirpath, name)
            if not os.path.islink(path):
                os.chmod(path, 0o600)


def _skip_links(directory: str, names: list[str]) -> set[str]:
    """copytree ignore hook that drops symlinks."""
    return {name for name in names if os.path.islink(os.path.join(directory, name))}


def _install_staged(staging: Path, auth_dir: Path) -> None:
    """Move prepared entries into auth_dir one rename at a time."""
    auth_dir.mkdir(parents=True, exist_ok=True)
    for entry in staging.iterdir():
        dest = auth_dir / entry.name
        if dest.is_dir() and not dest.is_symlink():
            shutil.rmtree(dest)
        elif dest.exists() or dest.is_symlink():
            dest.unlink()
        os.replace(entry, dest)
    auth_dir.chmod(0o700)


def _is_within(path: Path, parent: Path) -> bool:
    try:
        path.resolve().relative_to(parent.resolve())
    except ValueError:
        return False
    return True


def centralize(location: Path, auth_dir: Path) -> bool:
    """Copy a bundle into auth_dir. Returns False if it already lives there.

    The original is left in place so a working legacy setup keeps working.
    """
    if _is_within(location, auth_dir):
        return False

    auth_dir.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=".auth-staging-", dir=auth_dir.parent))
    try:
        if location.is_dir():
            shutil.copytree(location, staging, dirs_exist_ok=True, ignore=_skip_links)
        else:
            shutil.copy2(location, staging / location.name)
        tighten_permissions(staging)
        _install_staged(staging, auth_dir)
    finally:
        shutil.rmtree(staging, ignore_errors=True)

    logger.info("Credentials centralized", source=str(location), dest=str(auth_dir))
    return True


def extract_bundle(archive: bytes, dest: Path, strip: int = EXTRACT_STRIP_COMPONENTS) -> int:
    """Unpack regular files and directories from a tar stream, dropping *strip* leading segments.

    Links, devices and anything escaping *dest* are skipped. Returns the
    number of files written.
    """
    written = 0
    with tarfile.open(fileobj=io.BytesIO(archive), mode="r:") as tar:
        for member in tar.getmembers():
            parts = PurePosixPath(member.name.lstrip("/")).parts[strip:]
            if not parts or ".." in parts:
                continue
            target = dest.joinpath(*parts)
            if member.isdir():
                target.mkdir(parents=True, exist_ok=True)
            elif member.isfile():
                source = tar.extractfile(member)
                if source is None:
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(source.read())
                written += 1
    return written


def _teardown(workspace: Path, runtime: ContainerRuntime) -> None:
    """Remove the bootstrap container and its workspace, whatever happened before."""
    logger.info("Cleaning up authentication container", workspace=str(workspace))
    try:
        running = {folder.resolve(): cid for folder, cid in runtime.running_containers().items()}
        container_id = running.get(workspace.resolve())
        if container_id:
            runtime.stop(container_id)
            runtime.remove(container_id)
    except (ContainerStopFailed, OSError) as exc:
        logger.warning("Could not remove authentication container", error=str(exc))
    shutil.rmtree(workspace, ignore_errors=True)


def bootstrap(auth_dir: Path, runtime: ContainerRuntime) -> None:
    """Run an interactive login in a throwaway container and keep its credentials."""
    runtime.require()

    workspace = Path(tempfile.mkdtemp(prefix="cowork-auth-"))
    spec_dir = workspace / ".devcontainer"
    spec_dir.mkdir()
    (spec_dir / "devcontainer.json").write_text(json.dumps(AUTH_BOOTSTRAP_DEVCONTAINER, indent=4) + "\n")

    try:
        try:
            runtime.up(workspace)
        except ContainerStartFailed as exc:
            raise CredentialBootstrapFailed(f"Authentication container failed to start: {exc.message}") from exc

        if runtime.exec_interactive(workspace, ["claude", "login"]) != 0:
            raise CredentialBootstrapFailed("Login was not completed")

        result = runtime.exec_bytes(workspace, ["tar", "-cf", "-", CONTAINER_AUTH_PATH])
        if result.returncode != 0 or not result.stdout:
            raise CredentialBootstrapFailed("Could not read credentials from the authentication container")

        auth_dir.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=".auth-staging-", dir=auth_dir.parent))
        try:
            try:
                count = extract_bundle(result.stdout, staging)
            except tarfile.TarError as exc:
                raise CredentialBootstrapFailed(f"Corrupt credential archive: {exc}") from exc
            if count == 0:
                raise CredentialBootstrapFailed("The authentication container produced no credential files")
            tighten_permissions(staging)
            _install_staged(staging, auth_dir)
        finally:
            shutil.rmtree(staging, ignore_errors=True)
    finally:
        _teardown(workspace, runtime)

    logger.info("Authentication completed", auth_dir=str(auth_dir))


def authenticate(
    paths: CoworkPaths,
    runtime: ContainerRuntime,
    home: Path | None = None,
) -> AuthOutcome:
    """Make sure a usable bundle sits in the canonical directory."""
    state = validate(paths.auth_dir)
    if state is not CredentialState.INVALID:
        return AuthOutcome(state=state, source=paths.auth_dir)

    location = discover(home or Path.home())
    if location is not None:
        state = validate(location)
        if state is not CredentialState.INVALID:
            centralized = centralize(location, paths.auth_dir)
            return AuthOutcome(state=state, source=location, centralized=centralized)
        logger.warning("Existing authentication is invalid", path=str(location))

    bootstrap(paths.auth_dir, runtime)
    return AuthOutcome(state=validate(paths.auth_dir), source=paths.auth_dir, bootstrapped=True)


def ensure_credentials(
    paths: CoworkPaths,
    runtime: ContainerRuntime,
    home: Path | None = None,
) -> AuthOutcome | None:
    """Used before connecting: authenticate synchronously only when nothing usable exists."""
    state = validate(paths.auth_dir)
    if state is not CredentialState.INVALID:
        return None
    logger.warning("No authentication found, running auth first")
    return authenticate(paths, runtime, home)
