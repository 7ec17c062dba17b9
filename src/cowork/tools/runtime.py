"""Container runtime access: the devcontainer CLI plus docker.

Every session container is labelled by the devcontainer CLI with
``devcontainer.local_folder=<workspace>``; status and teardown rely on
that label.
"""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from cowork.errors import ContainerStartFailed, ContainerStopFailed, MissingExternalTool
from cowork.logger import logger

FOLDER_LABEL = "devcontainer.local_folder"


@dataclass(frozen=True)
class ContainerRuntime:
    """Drives `devcontainer` for lifecycle and exec, `docker` for queries."""

    devcontainer_cli: str = "devcontainer"
    docker_cli: str = "docker"

    def require(self) -> None:
        """Fail fast when the devcontainer CLI is not installed."""
        if not shutil.which(self.devcontainer_cli):
            raise MissingExternalTool(
                "devcontainer CLI",
                "Please install it: npm install -g @devcontainers/cli",
            )

    def _workspace(self, directory: Path) -> list[str]:
        return ["--workspace-folder", str(directory)]

    def up(self, directory: Path) -> None:
        logger.info("Starting container", workspace=str(directory))
        result = subprocess.run([self.devcontainer_cli, "up", *self._workspace(directory)])
        if result.returncode != 0:
            raise ContainerStartFailed(f"devcontainer up failed for {directory} (exit {result.returncode})")

    def exec_interactive(self, directory: Path, command: list[str]) -> int:
        """Run *command* attached to the terminal and return its exit status."""
        result = subprocess.run(
            [self.devcontainer_cli, "exec", *self._workspace(directory), *command]
        )
        return result.returncode

    def exec_capture(self, directory: Path, command: list[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            [self.devcontainer_cli, "exec", *self._workspace(directory), *command],
            capture_output=True,
            text=True,
        )

    def exec_bytes(self, directory: Path, command: list[str]) -> subprocess.CompletedProcess[bytes]:
        """Like exec_capture but keeps stdout binary (for tar streams)."""
        return subprocess.run(
            [self.devcontainer_cli, "exec", *self._workspace(directory), *command],
            capture_output=True,
        )

    def running_containers(self) -> dict[Path, str]:
        """Map workspace folder -> container id for every running devcontainer.

        One docker call regardless of how many sessions exist.
        """
        try:
            result = subprocess.run(
                [
                    self.docker_cli,
                    "ps",
                    "--filter",
                    f"label={FOLDER_LABEL}",
                    "--format",
                    f'{{{{.ID}}}}\t{{{{.Label "{FOLDER_LABEL}"}}}}',
                ],
                capture_output=True,
                text=True,
            )
        except FileNotFoundError:
            logger.warning("docker not found; treating all sessions as stopped")
            return {}
        if result.returncode != 0:
            logger.warning("docker ps failed", stderr=result.stderr.strip())
            return {}

        running: dict[Path, str] = {}
        for line in result.stdout.splitlines():
            container_id, _, folder = line.partition("\t")
            if container_id and folder:
                running[Path(folder)] = container_id
        return running

    def _docker(self, action: str, container_id: str) -> None:
        try:
            subprocess.run(
                [self.docker_cli, action, container_id], capture_output=True, text=True, check=True
            )
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or "").strip() or f"exit {exc.returncode}"
            raise ContainerStopFailed(f"docker {action} {container_id} failed: {detail}") from exc
        except OSError as exc:
            raise ContainerStopFailed(f"docker {action} {container_id} failed: {exc}") from exc

    def stop(self, container_id: str) -> None:
        self._docker("stop", container_id)

    def remove(self, container_id: str) -> None:
        self._docker("rm", container_id)

    def docker_available(self) -> bool:
        try:
            result = subprocess.run([self.docker_cli, "info"], capture_output=True)
        except FileNotFoundError:
            return False
        return result.returncode == 0

    def cli_version(self) -> str | None:
        if not shutil.which(self.devcontainer_cli):
            return None
        result = subprocess.run(
            [self.devcontainer_cli, "--version"], capture_output=True, text=True
        )
        return result.stdout.strip() or "unknown"
