# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.
"""Status handling of a deployment."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from logging import getLogger
from pathlib import Path

from stack_provisioner.config.literals import Services
from stack_provisioner.core.workload import DeploymentPaths

logger = getLogger(__name__)


class ActivationStatus(str, Enum):
    """Outcome of the activation check."""

    HEALTHY = "healthy"
    DEGRADED_BUT_RUNNING = "degraded-but-running"
    FAILED = "failed"

    @property
    def is_running(self) -> bool:
        """Does the stack serve requests."""
        return self is not ActivationStatus.FAILED


def classify(declared: set[str], running: set[str], probe_ok: bool) -> ActivationStatus:
    """Maps the observed service states and the health probe to a status.

    A failed probe or an empty runtime is FAILED. DEGRADED_BUT_RUNNING means
    the application answered its health probe while some declared services
    are not running, so the stack serves requests with a missing dependency.

    Args:
        declared: services declared in the compose manifest
        running: services the runtime reports as running
        probe_ok: did the health probe succeed within its budget
    """
    if not running or not probe_ok:
        return ActivationStatus.FAILED
    if declared <= running:
        return ActivationStatus.HEALTHY
    return ActivationStatus.DEGRADED_BUT_RUNNING


@dataclass
class DeploymentReport:
    """What a provisioning or verification run observed."""

    status: ActivationStatus
    paths: DeploymentPaths
    app_endpoint: str
    database_port: int
    running_services: set[str] = field(default_factory=set)
    jobs_registered: bool = False

    @property
    def missing_services(self) -> list[str]:
        """Declared services that are not running."""
        return [service.value for service in Services if service.value not in self.running_services]

    @property
    def important_files(self) -> list[Path]:
        """Files the operator should know about."""
        return [
            self.paths.env_file,
            self.paths.compose_file,
            self.paths.database_config_file,
            self.paths.cache_config_file,
            self.paths.ssl_path,
        ]


class StatusReporter:
    """Logs the summary of a deployment."""

    def __init__(self, report: DeploymentReport):
        self.report = report

    def summary(self) -> list[str]:
        """The summary lines."""
        report = self.report
        compose = f"docker compose --file {report.paths.compose_file}"
        lines = [
            f"Status: {report.status.value}",
            f"Project directory: {report.paths.root}",
            f"Application: {report.app_endpoint}",
            f"Database port: {report.database_port} (TLS required)",
        ]
        if report.missing_services:
            lines.append(f"Not running: {', '.join(report.missing_services)}")
        lines.append("Important files:")
        lines.extend(f"  {path}" for path in report.important_files)
        lines.extend(
            [
                "Common commands:",
                f"  {compose} ps",
                f"  {compose} logs -f",
                f"  {compose} restart",
                f"Keep {report.paths.env_file} private, it holds every credential of the stack.",
            ]
        )
        return lines

    def log_summary(self) -> None:
        """Logs the summary, warning when the stack is degraded."""
        logger.info(f"{' Deployment summary ':=^40}")
        for line in self.summary():
            logger.info(line)
        logger.info(f"{' End of deployment summary ':=^40}")
        if self.report.status is ActivationStatus.DEGRADED_BUT_RUNNING:
            logger.warning(
                "The stack is degraded: %s not running.", ", ".join(self.report.missing_services)
            )
