#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Provisioner for the new-api stack.

Runs the phases strictly in order and stops at the first fatal error:

1. environment check
2. deployment tree and credential set
3. certificate authority and leaf certificates
4. configuration files and firewall
5. activation, verification and recurring jobs

Phases 2 to 5 run under an exclusive lock on the deployment root, shared
with the recurring jobs.
"""

from __future__ import annotations

import fcntl
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import final

from stack_provisioner.core.structured_config import ProvisionerConfig
from stack_provisioner.core.workload import DeploymentPaths
from stack_provisioner.exceptions import DeploymentLockedError, FatalPreconditionError
from stack_provisioner.managers.activation import ActivationManager
from stack_provisioner.managers.config import ConfigManager, TemplateRenderer
from stack_provisioner.managers.credentials import CredentialManager, DirectoryManager
from stack_provisioner.managers.environment import EnvironmentManager, Platform
from stack_provisioner.managers.firewall import FirewallManager
from stack_provisioner.managers.maintenance import MaintenanceManager
from stack_provisioner.managers.tls import TLSManager
from stack_provisioner.state.credentials import CredentialSet
from stack_provisioner.status import ActivationStatus, DeploymentReport, StatusReporter
from stack_provisioner.utils.helpers import primary_address
from stack_provisioner.workload import HostStackWorkload

logger = logging.getLogger(__name__)


@dataclass
class ProvisioningContext:
    """What the phases share: the inputs and what earlier phases produced."""

    config: ProvisionerConfig
    paths: DeploymentPaths
    platform: Platform | None = None
    credentials: CredentialSet | None = None


class DeploymentLock:
    """Exclusive, non-blocking lock on the deployment root."""

    def __init__(self, path: Path):
        self.path = path
        self.fd: int | None = None

    def __enter__(self) -> DeploymentLock:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o600)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            os.close(fd)
            raise DeploymentLockedError(
                f"{self.path} is held by another provisioning run or a maintenance job"
            ) from e
        self.fd = fd
        return self

    def __exit__(self, *exc_info) -> None:
        if self.fd is not None:
            fcntl.flock(self.fd, fcntl.LOCK_UN)
            os.close(self.fd)
            self.fd = None


@final
class Provisioner:
    """Provisions one deployment root."""

    def __init__(self, config: ProvisionerConfig, workload: HostStackWorkload | None = None):
        self.config = config
        self.paths = DeploymentPaths(config.root)
        self.workload = workload or HostStackWorkload(self.paths)
        self.context = ProvisioningContext(config=config, paths=self.paths)
        self.renderer = TemplateRenderer()

        # Managers
        self.environment_manager = EnvironmentManager(self.workload, config)
        self.directory_manager = DirectoryManager(self.workload)
        self.credential_manager = CredentialManager(self.workload, config, self.renderer)
        self.tls_manager = TLSManager(self.workload, config.certificates)
        self.firewall_manager = FirewallManager(self.workload, config)
        self.activation_manager = ActivationManager(self.workload, config)
        self.maintenance_manager = MaintenanceManager(self.paths, config.maintenance)

    @property
    def config_manager(self) -> ConfigManager:
        """The renderer, once the credential set is known."""
        assert self.context.credentials is not None
        return ConfigManager(self.config, self.context.credentials, self.workload, self.renderer)

    def run(self) -> DeploymentReport:
        """Runs every phase.

        Raises:
            FatalPreconditionError, SecretGenerationError, InvalidCredentialsError,
            TemplateRenderError, CertificateChainError, ActivationError
        """
        logger.info(f"{' Environment check ':=^40}")
        self.context.platform = self.environment_manager.check()
        self.warn_external_access()

        self.workload.mkdir(self.paths.root)
        with DeploymentLock(self.paths.lock_file):
            self.initialize()
            self.issue_certificates()
            self.configure()
            return self.activate()

    def warn_external_access(self) -> None:
        """The external grant opens the database to one more host."""
        if self.config.external_access_ip is None:
            return
        logger.warning(
            "The database port and an external user will be allowed from %s, "
            "make sure this address is intended.",
            self.config.external_access_ip,
        )

    def initialize(self) -> None:
        """Creates the deployment tree and loads or generates the credentials."""
        logger.info(f"{' Initialisation ':=^40}")
        self.directory_manager.create()
        self.context.credentials = self.credential_manager.load_or_generate()

    def issue_certificates(self) -> None:
        """Issues, or reuses, the certificate set."""
        logger.info(f"{' Certificates ':=^40}")
        self.tls_manager.ensure_certificates()

    def configure(self) -> None:
        """Writes the configuration files and applies the firewall rules."""
        logger.info(f"{' Configuration ':=^40}")
        self.config_manager.materialize()
        self.firewall_manager.configure()

    def activate(self) -> DeploymentReport:
        """Starts the stack and registers the jobs once it serves requests.

        Raises:
            ContainersNotRunningError, ReadinessTimeoutError
        """
        logger.info(f"{' Activation ':=^40}")
        self.activation_manager.activate()
        status = self.activation_manager.verify()
        assert self.context.credentials is not None
        self.activation_manager.check_database_tls(self.context.credentials)

        self.maintenance_manager.register()
        report = self.build_report(status, jobs_registered=True)
        StatusReporter(report).log_summary()
        return report

    def verify(self) -> DeploymentReport:
        """Checks an existing deployment without changing it.

        Raises:
            FatalPreconditionError if the root holds no deployment.
            ContainersNotRunningError, ReadinessTimeoutError
        """
        if not self.paths.compose_file.is_file():
            raise FatalPreconditionError(f"no deployment found in {self.paths.root}")
        status = self.activation_manager.verify()
        if self.credential_manager.exists:
            self.activation_manager.check_database_tls(self.credential_manager.load())
        report = self.build_report(status, jobs_registered=self.config.maintenance.cron_file.is_file())
        StatusReporter(report).log_summary()
        return report

    def backup(self) -> str:
        """Runs the backup job now, under the deployment lock."""
        if not self.paths.backup_script.is_file():
            raise FatalPreconditionError(f"no backup script found in {self.paths.scripts_path}")
        return self.maintenance_manager.run_backup()

    def build_report(self, status: ActivationStatus, jobs_registered: bool) -> DeploymentReport:
        """The report of this run."""
        return DeploymentReport(
            status=status,
            paths=self.paths,
            app_endpoint=f"http://{primary_address()}:{self.config.topology.app_port}",
            database_port=self.config.topology.database_port,
            running_services=self.activation_manager.running,
            jobs_registered=jobs_registered,
        )
