#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Backup job workload definition."""

from pathlib import Path

from stack_provisioner.config.literals import Services
from stack_provisioner.config.models import BACKUP_JOB, RecurringJob
from stack_provisioner.core.workload import DeploymentPaths, WorkloadBase


class JobWorkload(WorkloadBase):
    """A recurring job running a rendered script of the deployment."""

    job: RecurringJob

    @property
    def script(self) -> Path:
        """The script run by the scheduler."""
        return self.paths.scripts_path / self.job.script

    def cron_line(self, user: str, log_dir: Path) -> str:
        """The cron.d entry of the job.

        The job takes the deployment lock without waiting, so it is skipped
        while a provisioning run is in progress.
        """
        return (
            f"{self.job.schedule} {user} flock -n {self.paths.lock_file} {self.script}"
            f" >> {log_dir / self.job.log_file} 2>&1\n"
        )

    def run_now(self) -> str:
        """Runs the job once, under the same lock as the scheduler."""
        return self.exec(["flock", "-n", str(self.paths.lock_file), str(self.script)])


class BackupWorkload(JobWorkload):
    """Daily dump of the database, the cache and the application data."""

    job = BACKUP_JOB
    services = [Services.DATABASE.value, Services.CACHE.value]

    def __init__(self, paths: DeploymentPaths) -> None:
        super().__init__(paths)
