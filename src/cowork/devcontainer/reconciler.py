"""Make sure every session directory has a devcontainer.json that mounts the shared credentials.

A user-authored file is never rewritten without an explicit opt-in, and
a timestamped backup is always written first.
"""

from __future__ import annotations

import json
import re
import shutil
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Protocol

from cowork.devcontainer.templates import AUTH_MOUNT, AUTH_MOUNT_MARKER, DEFAULT_DEVCONTAINER
from cowork.errors import MissingSpecification
from cowork.logger import logger

SPEC_RELATIVE_PATH = Path(".devcontainer") / "devcontainer.json"

MANUAL_INSTRUCTIONS = (
    "Add this to your 'mounts' array in devcontainer.json:\n"
    + json.dumps(AUTH_MOUNT, indent=4)
)


class SpecState(str, Enum):
    READY = "ready"
    MISSING_MOUNT = "missing_mount"
    MISSING = "missing"


class Readiness(str, Enum):
    READY = "ready"
    NEEDS_USER_DECISION = "needs_user_decision"


class Resolution(str, Enum):
    MANUAL = "manual"
    PATCH = "patch"
    SKIP_AUTH = "skip_auth"


class Prompter(Protocol):
    """The questions reconcile() may need to ask."""

    def choose_resolution(self) -> Resolution: ...

    def confirm_generate(self) -> bool: ...

    def notify(self, message: str) -> None: ...


def spec_path(session_dir: Path) -> Path:
    return session_dir / SPEC_RELATIVE_PATH


def declares_auth_mount(text: str) -> bool:
    return AUTH_MOUNT_MARKER in text


def inspect(session_dir: Path) -> SpecState:
    path = spec_path(session_dir)
    if not path.is_file():
        return SpecState.MISSING
    if declares_auth_mount(path.read_text()):
        return SpecState.READY
    return SpecState.MISSING_MOUNT


def ensure(session_dir: Path) -> Readiness:
    """READY when nothing needs changing, otherwise someone has to decide."""
    if inspect(session_dir) is SpecState.READY:
        return Readiness.READY
    return Readiness.NEEDS_USER_DECISION


# Strings are matched first and kept, so nothing inside them is touched
_JSONC_NOISE = re.compile(
    r'"(?:\\.|[^"\\])*"'
    r"|//[^\n]*"
    r"|/\*.*?\*/"
    r"|,(?=(?:\s|//[^\n]*|/\*.*?\*/)*[}\]])",
    re.DOTALL,
)


def _strip_jsonc(text: str) -> str:
    """Drop // and /* */ comments outside strings, and trailing commas."""
    return _JSONC_NOISE.sub(lambda m: m.group(0) if m.group(0).startswith('"') else "", text)


def patch_auth_mount(path: Path, now: datetime | None = None) -> Path | None:
    """Append the auth mount to an existing descriptor.

    Returns the backup path, or None when the mount was already declared
    (the file is left untouched). Raises ValueError when the file is not a
    JSON object.
    """
    text = path.read_text()
    if declares_auth_mount(text):
        return None

    document = json.loads(_strip_jsonc(text))
    if not isinstance(document, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    mounts = document.get("mounts") or []
    if not isinstance(mounts, list):
        raise ValueError(f"'mounts' in {path} is not a list")

    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    backup = path.with_name(f"{path.name}.backup-{stamp}")
    shutil.copy2(path, backup)

    document["mounts"] = [*mounts, dict(AUTH_MOUNT)]
    path.write_text(json.dumps(document, indent=4) + "\n")
    logger.info("Patched devcontainer.json with auth mount", path=str(path), backup=str(backup))
    return backup


def write_default(session_dir: Path) -> Path:
    path = spec_path(session_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(DEFAULT_DEVCONTAINER, indent=4) + "\n")
    logger.info("Created default devcontainer.json", path=str(path))
    return path


def reconcile(session_dir: Path, prompter: Prompter) -> Resolution | None:
    """Bring the session's descriptor into shape, asking the user where needed.

    Returns the resolution chosen for a descriptor missing the auth mount,
    or None when no choice was needed.
    """
    state = inspect(session_dir)
    if state is SpecState.READY:
        prompter.notify("Auth mount already configured")
        return None

    if state is SpecState.MISSING:
        if not prompter.confirm_generate():
            raise MissingSpecification("Cannot proceed without devcontainer.json")
        write_default(session_dir)
        prompter.notify("Created default devcontainer.json with auth mount")
        return None

    path = spec_path(session_dir)
    resolution = prompter.choose_resolution()
    if resolution is Resolution.PATCH:
        try:
            backup = patch_auth_mount(path)
        except (ValueError, OSError) as exc:
            logger.warning("Automatic patch failed", path=str(path), error=str(exc))
            prompter.notify(f"Could not update {path} automatically: {exc}")
            prompter.notify(MANUAL_INSTRUCTIONS)
            return Resolution.MANUAL
        if backup is not None:
            prompter.notify(f"Updated devcontainer.json with auth mount (backup: {backup.name})")
    elif resolution is Resolution.MANUAL:
        prompter.notify(MANUAL_INSTRUCTIONS)
        prompter.notify("Update the file manually, then restart the container")
    else:
        logger.warning("Continuing without shared credentials", path=str(path))
        prompter.notify("Continuing without Claude CLI support")
    return resolution
