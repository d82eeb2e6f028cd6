#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Host workload definition.

The stack runs as a docker compose project on the local host, every
operation is a subprocess call or a local file operation.
"""

import json
import os
import shutil
import subprocess
from collections.abc import Mapping
from logging import getLogger
from pathlib import Path

from typing_extensions import override

from stack_provisioner.config.literals import CONFIG_FILE_MODE, PROJECT_NAME
from stack_provisioner.core.workload import DeploymentPaths, WorkloadBase
from stack_provisioner.exceptions import ToolInvocationError

logger = getLogger(__name__)


class HostWorkload(WorkloadBase):
    """Wrapper for performing common operations on the provisioned host."""

    services: list[str]

    def __init__(self, paths: DeploymentPaths) -> None:
        super().__init__(paths)

    @override
    def start(self) -> None:
        self.compose("up", "-d", *self.services)

    def pull(self) -> None:
        """Pulls the images of the workload services."""
        self.compose("pull", *self.services)

    def logs(self, tail: int) -> str:
        """The runtime's log output for the workload services."""
        return self.compose("logs", "--no-color", f"--tail={tail}", *self.services)

    def compose(self, *args: str) -> str:
        """Runs a docker compose subcommand against the deployment manifest."""
        command = [
            "docker",
            "compose",
            "--project-name",
            PROJECT_NAME,
            "--file",
            str(self.paths.compose_file),
            *args,
        ]
        return self.exec(command, working_dir=self.paths.root)

    def running_services(self) -> set[str]:
        """Services the runtime reports in the running state."""
        output = self.compose("ps", "--all", "--format", "json")
        return {
            container["Service"]
            for container in parse_compose_ps(output)
            if container.get("State") == "running"
        }

    @override
    def write(
        self,
        content: str,
        path: Path,
        permissions: int = CONFIG_FILE_MODE,
        owner: int | None = None,
    ) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, permissions)
        with os.fdopen(fd, "w") as f:
            f.write(content)
        # The umask may have dropped bits at creation, and an existing file keeps its old mode.
        path.chmod(permissions)
        if owner is not None:
            os.chown(path, owner, owner)

    def copy(self, source: Path, target: Path, permissions: int = CONFIG_FILE_MODE) -> None:
        """Copies a local file, setting the target mode."""
        self.write(source.read_text(), target, permissions)

    def mkdir(self, path: Path) -> None:
        """Creates a directory and its parents."""
        path.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def which(tool: str) -> str | None:
        """Resolves a tool on the PATH."""
        return shutil.which(tool)

    @override
    def exec(
        self,
        command: list[str] | str,
        env: Mapping[str, str] | None = None,
        working_dir: Path | None = None,
    ) -> str:
        try:
            output = subprocess.check_output(
                command,
                stderr=subprocess.PIPE,
                universal_newlines=True,
                shell=isinstance(command, str),
                env={**os.environ, **env} if env else None,
                cwd=working_dir,
            )
            logger.debug(f"{output=}")
            return output
        except subprocess.CalledProcessError as e:
            logger.error(f"cmd failed - cmd={e.cmd}, stdout={e.stdout}, stderr={e.stderr}")
            raise ToolInvocationError(
                e.cmd,
                e.returncode,
                e.stdout,
                e.stderr,
            ) from e
        except FileNotFoundError as e:
            logger.error(f"cmd failed - cmd={command}, {e}")
            raise ToolInvocationError(command, 127, None, str(e)) from e

    def setup_cron(self, lines: list[str], cron_file: Path) -> None:
        """Writes a cron.d file, replacing any previous registration."""
        self.write("".join(lines), cron_file, CONFIG_FILE_MODE)


def parse_compose_ps(output: str) -> list[dict]:
    """Parses `docker compose ps --format json`.

    Older compose releases print a JSON array, newer ones print one object per line.
    """
    output = output.strip()
    if not output:
        return []
    if output.startswith("["):
        return json.loads(output)
    return [json.loads(line) for line in output.splitlines() if line.strip()]
