"""Directory layout for Cowork state."""

import os
from dataclasses import dataclass
from pathlib import Path

CONFIG_FILENAME = ".cowork.conf"
PROJECT_CONFIG_DIR = ".cowork"

# Sessions beyond this count trigger a disk usage warning on init
SESSION_COUNT_WARNING = 10


@dataclass(frozen=True)
class CoworkPaths:
    """Locations of everything Cowork keeps under ~/.cowork."""

    root: Path

    @property
    def auth_dir(self) -> Path:
        return self.root / "auth"

    @property
    def sessions_dir(self) -> Path:
        return self.root / "sessions"

    @property
    def user_config(self) -> Path:
        return self.root / CONFIG_FILENAME


def default_paths() -> CoworkPaths:
    """Resolve the Cowork root, honouring COWORK_HOME."""
    override = os.environ.get("COWORK_HOME")
    if override:
        return CoworkPaths(root=Path(override).expanduser().resolve())
    return CoworkPaths(root=Path.home() / ".cowork")


def project_config_path(repo_root: Path) -> Path:
    return repo_root / PROJECT_CONFIG_DIR / CONFIG_FILENAME


def ensure_dirs(paths: CoworkPaths) -> None:
    """Ensure the Cowork directory structure exists."""
    paths.root.mkdir(parents=True, exist_ok=True)
    paths.auth_dir.mkdir(parents=True, exist_ok=True)
    paths.sessions_dir.mkdir(parents=True, exist_ok=True)
    paths.user_config.touch(exist_ok=True)
