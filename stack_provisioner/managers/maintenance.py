#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Manager for the recurring backup and monitoring jobs."""

from __future__ import annotations

import logging

from stack_provisioner.core.structured_config import MaintenancePolicy
from stack_provisioner.core.workload import DeploymentPaths
from stack_provisioner.workload import HostBackupWorkload, HostMonitorWorkload
from stack_provisioner.workload.backup_workload import JobWorkload

logger = logging.getLogger(__name__)

CRON_HEADER = "# Recurring jobs of the new-api stack, rewritten on every provisioning run.\n"


class MaintenanceManager:
    """Registers the jobs in a cron.d file."""

    def __init__(self, paths: DeploymentPaths, policy: MaintenancePolicy) -> None:
        self.policy = policy
        self.backup_workload = HostBackupWorkload(paths)
        self.monitor_workload = HostMonitorWorkload(paths)

    @property
    def jobs(self) -> list[JobWorkload]:
        """The registered jobs."""
        return [self.backup_workload, self.monitor_workload]

    def cron_lines(self) -> list[str]:
        """The content of the cron.d file."""
        return [CRON_HEADER, *(job.cron_line(self.policy.run_as, self.policy.log_dir) for job in self.jobs)]

    def register(self) -> None:
        """Writes the cron.d file, replacing any previous registration."""
        self.backup_workload.mkdir(self.policy.log_dir)
        self.backup_workload.setup_cron(self.cron_lines(), self.policy.cron_file)
        for job in self.jobs:
            logger.info(f"Registered the {job.job.name} job ({job.job.schedule}).")

    def run_backup(self) -> str:
        """Runs the backup job immediately."""
        logger.info("Running the backup job.")
        return self.backup_workload.run_now()
