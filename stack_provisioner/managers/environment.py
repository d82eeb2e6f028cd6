#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Manager for the host environment checks.

Verifies privileges, identifies the platform family and installs the
external tools the workflow shells out to.
"""

from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass
from pathlib import Path

from stack_provisioner.config.literals import PlatformFamily
from stack_provisioner.config.models import INSTALL_PROCEDURES, REQUIRED_TOOLS, InstallProcedure, RequiredTool
from stack_provisioner.core.host_workload import HostWorkload
from stack_provisioner.core.structured_config import ProvisionerConfig
from stack_provisioner.exceptions import (
    MissingToolError,
    PrivilegeError,
    ToolInvocationError,
    UnsupportedPlatformError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Platform:
    """The identified operating system."""

    id: str
    family: PlatformFamily
    name: str = ""
    version: str = ""

    @property
    def install_procedure(self) -> InstallProcedure:
        """The package manager commands of this platform."""
        return INSTALL_PROCEDURES[self.family]


def parse_os_release(content: str) -> dict[str, str]:
    """Parses the KEY=value lines of an os-release file."""
    values = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        try:
            words = shlex.split(value)
        except ValueError:
            words = [value]
        values[key.strip()] = " ".join(words)
    return values


def platform_family(os_id: str, id_like: str = "") -> PlatformFamily | None:
    """Maps an os-release ID and ID_LIKE to a known platform family."""
    candidates = [os_id.lower(), *id_like.lower().split()]
    for candidate in candidates:
        if candidate in ("debian", "ubuntu"):
            return PlatformFamily.DEBIAN
        if candidate in ("rhel", "centos", "fedora", "rocky", "almalinux"):
            return PlatformFamily.RHEL
    return None


class EnvironmentManager:
    """Checks the host can run the stack, installing what is missing."""

    def __init__(self, workload: HostWorkload, config: ProvisionerConfig) -> None:
        self.workload = workload
        self.config = config

    def check(self) -> Platform:
        """Runs every check, in order.

        Raises:
            PrivilegeError, UnsupportedPlatformError, MissingToolError
        """
        self.check_privileges()
        platform = self.detect_platform()
        logger.info(f"Detected {platform.name or platform.id} ({platform.family.value} family).")
        self.ensure_tools(platform)
        self.log_versions()
        return platform

    def check_privileges(self) -> None:
        """The workflow writes to system paths and manages the firewall."""
        if os.geteuid() != 0:
            raise PrivilegeError("the provisioner must run as root")

    def detect_platform(self) -> Platform:
        """Identifies the platform family from the os-release file.

        Raises:
            UnsupportedPlatformError
        """
        path: Path = self.config.os_release_file
        try:
            values = parse_os_release(path.read_text())
        except OSError as e:
            raise UnsupportedPlatformError(f"cannot identify the operating system: {e}") from e

        os_id = values.get("ID", "")
        family = platform_family(os_id, values.get("ID_LIKE", ""))
        if family is None:
            raise UnsupportedPlatformError(f"unsupported operating system: {os_id or 'unknown'}")
        return Platform(
            id=os_id,
            family=family,
            name=values.get("PRETTY_NAME") or values.get("NAME", ""),
            version=values.get("VERSION_ID", ""),
        )

    def is_available(self, tool: RequiredTool) -> bool:
        """Runs the check command of a tool."""
        try:
            self.workload.exec(tool.check)
        except ToolInvocationError:
            return False
        return True

    def ensure_tools(self, platform: Platform) -> None:
        """Installs each missing tool and checks it again.

        Raises:
            MissingToolError
        """
        for tool in REQUIRED_TOOLS:
            if self.is_available(tool):
                logger.debug("%s is available", tool.name)
                continue
            if tool.container_runtime and self.config.skip_docker_install:
                raise MissingToolError(tool.name, "installation disabled by --skip-docker-install")

            logger.warning(f"{tool.name} is missing, installing it.")
            self.install(tool, platform.install_procedure)
            if not self.is_available(tool):
                raise MissingToolError(tool.name, "still unavailable after installation")
            logger.info(f"{tool.name} installed.")

    def install(self, tool: RequiredTool, procedure: InstallProcedure) -> None:
        """Installs one tool with the platform's package manager.

        Raises:
            MissingToolError if a package manager command fails.
        """
        if tool.name == "docker" and procedure.docker:
            commands = procedure.docker
        else:
            commands = [procedure.refresh, [*procedure.install, tool.package]]
        try:
            for command in commands:
                self.workload.exec(command)
        except ToolInvocationError as e:
            raise MissingToolError(tool.name, f"installation failed ({e.return_code})") from e

    def log_versions(self) -> None:
        """Logs the container runtime and compose versions."""
        for tool in REQUIRED_TOOLS:
            if not tool.container_runtime:
                continue
            try:
                logger.info(f"{tool.name}: {self.workload.exec(tool.check).strip()}")
            except ToolInvocationError:
                logger.warning("Cannot read the %s version", tool.name)
