#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Monitoring job workload definition."""

from stack_provisioner.config.literals import Services
from stack_provisioner.config.models import MONITOR_JOB
from stack_provisioner.core.workload import DeploymentPaths
from stack_provisioner.workload.backup_workload import JobWorkload


class MonitorWorkload(JobWorkload):
    """Hourly service, health endpoint and disk usage check."""

    job = MONITOR_JOB
    services = [Services.APP.value, Services.CACHE.value, Services.DATABASE.value]

    def __init__(self, paths: DeploymentPaths) -> None:
        super().__init__(paths)
