"""Project identity and session data models."""

import hashlib
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from cowork.config import project_config_path

SESSION_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def sanitize_project_name(name: str) -> str:
    """Lowercase, map anything outside [a-z0-9-] to '-', trim dashes."""
    return re.sub(r"[^a-z0-9-]", "-", name.lower()).strip("-")


def project_hash(root: Path) -> str:
    """Short content hash of the repository root path."""
    return hashlib.sha256(f"{root}\n".encode()).hexdigest()[:8]


def is_valid_session_name(name: str) -> bool:
    return bool(SESSION_NAME_RE.match(name)) and not name.endswith(".lock")


@dataclass(frozen=True)
class ProjectIdentity:
    """Derived once per invocation from the enclosing repository."""

    name: str
    slug: str
    hash: str
    origin_url: str
    root: Path

    @classmethod
    def from_root(cls, root: Path, origin_url: str) -> "ProjectIdentity":
        return cls(
            name=root.name,
            slug=sanitize_project_name(root.name),
            hash=project_hash(root),
            origin_url=origin_url,
            root=root,
        )

    @property
    def config_path(self) -> Path:
        return project_config_path(self.root)


class SessionStatus(str, Enum):
    MISSING = "missing"
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass
class Session:
    """A named clone + container pair. Status is always computed, never stored."""

    name: str
    project_slug: str
    directory: Path
    branch: str | None = None
    status: SessionStatus = SessionStatus.MISSING
    container_id: str | None = None
    last_modified: datetime | None = None


@dataclass
class InitReport:
    """Outcome of processing a list of names with `init`."""

    created: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed
