"""Session registry - map session names to clone directories and containers.

Layout::

    ~/.cowork/sessions/{project-slug}-{session}/   # full clone
        .devcontainer/devcontainer.json

The ordered list of names lives in the project config (SESSIONS).
"""

from __future__ import annotations

import shutil
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from cowork.config import CoworkPaths
from cowork.errors import (
    ContainerStopFailed,
    CoworkError,
    InvalidSessionName,
    NoRemote,
    NotARepository,
)
from cowork.logger import logger
from cowork.sessions.models import (
    InitReport,
    ProjectIdentity,
    Session,
    SessionStatus,
    is_valid_session_name,
)
from cowork.settings.models import CoworkConfig
from cowork.settings.store import save_config
from cowork.tools.git import Git, GitCommandError
from cowork.tools.runtime import ContainerRuntime

EnvironmentHook = Callable[[Path], object]


def resolve_identity(cwd: Path, git: Git) -> ProjectIdentity:
    """Identify the project enclosing *cwd*."""
    root = git.repository_root(cwd)
    if root is None:
        raise NotARepository("Not in a git repository")
    origin = git.remote_origin_url(root)
    if not origin:
        raise NoRemote("No git origin found")
    return ProjectIdentity.from_root(root, origin)


class SessionRegistry:
    """Sessions of one project: creation, status and teardown."""

    def __init__(
        self,
        paths: CoworkPaths,
        identity: ProjectIdentity,
        git: Git,
        runtime: ContainerRuntime,
    ) -> None:
        self.paths = paths
        self.identity = identity
        self.git = git
        self.runtime = runtime

    def session_dir(self, name: str) -> Path:
        return self.paths.sessions_dir / f"{self.identity.slug}-{name}"

    def create_session(self, name: str, ensure_environment: EnvironmentHook) -> Session | None:
        """Clone, branch and prepare one session.

        Returns None when the directory already exists so repeated `init`
        calls with overlapping names are harmless.
        """
        if not is_valid_session_name(name):
            raise InvalidSessionName(name)

        directory = self.session_dir(name)
        if directory.exists():
            logger.warning("Session already exists, skipping", session=name, path=str(directory))
            return None

        logger.info("Cloning repository", session=name, origin=self.identity.origin_url)
        self.git.clone(self.identity.origin_url, directory)
        self.git.create_or_checkout_branch(directory, name)
        ensure_environment(directory)

        logger.info("Session created", session=name, path=str(directory))
        return Session(
            name=name,
            project_slug=self.identity.slug,
            directory=directory,
            branch=name,
            status=SessionStatus.STOPPED,
        )

    def init_sessions(
        self,
        names: list[str],
        config: CoworkConfig,
        ensure_environment: EnvironmentHook,
    ) -> tuple[InitReport, CoworkConfig]:
        """Create sessions strictly in the given order and persist the list once.

        A failure on one name is recorded and the remaining names are still
        processed. A directory that already exists is registered as well, so
        one left behind by an interrupted init stays reachable by `clean`.
        """
        report = InitReport()
        registered = list(config.sessions)

        for name in names:
            try:
                session = self.create_session(name, ensure_environment)
            except (CoworkError, GitCommandError, OSError) as exc:
                logger.error("Session creation failed", session=name, error=str(exc))
                reason = getattr(exc, "message", str(exc))
                if is_valid_session_name(name) and self.session_dir(name).exists():
                    reason = f"{reason} (partial clone left at {self.session_dir(name)})"
                report.failed[name] = reason
                continue
            if session is None:
                registered.append(name)
                report.skipped.append(name)
                continue
            registered.append(name)
            report.created.append(name)

        config = config.with_sessions(registered)
        save_config(self.identity.config_path, config)
        return report, config

    def list_sessions(self, config: CoworkConfig) -> list[Session]:
        """Status of every registered session from a single runtime query."""
        running = {folder.resolve(): cid for folder, cid in self.runtime.running_containers().items()}

        sessions = []
        for name in config.sessions:
            directory = self.session_dir(name)
            session = Session(name=name, project_slug=self.identity.slug, directory=directory)
            if directory.is_dir():
                container_id = running.get(directory.resolve())
                session.status = SessionStatus.RUNNING if container_id else SessionStatus.STOPPED
                session.container_id = container_id
                if (directory / ".git").exists():
                    session.branch = self.git.current_branch(directory)
                session.last_modified = datetime.fromtimestamp(directory.stat().st_mtime)
            sessions.append(session)
        return sessions

    def get_session(self, name: str, config: CoworkConfig) -> Session | None:
        for session in self.list_sessions(config):
            if session.name == name:
                return session
        return None

    def stop_all(self, config: CoworkConfig) -> list[str]:
        """Stop every running session container. Returns the stopped names."""
        stopped = []
        for session in self.list_sessions(config):
            if session.status is not SessionStatus.RUNNING or not session.container_id:
                continue
            logger.info("Stopping container", session=session.name, container=session.container_id)
            try:
                self.runtime.stop(session.container_id)
            except ContainerStopFailed as exc:
                logger.error("Failed to stop container", session=session.name, error=str(exc))
                raise
            stopped.append(session.name)
        return stopped

    def remove_all(self, config: CoworkConfig) -> CoworkConfig:
        """Stop containers, then delete directories, then clear the list."""
        self.stop_all(config)

        for name in config.sessions:
            directory = self.session_dir(name)
            if directory.is_dir():
                logger.info("Removing session", session=name, path=str(directory))
                shutil.rmtree(directory)

        config = config.with_sessions([])
        save_config(self.identity.config_path, config)
        return config
