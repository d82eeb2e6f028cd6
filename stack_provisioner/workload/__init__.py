# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.
"""The different workloads and their code for the provisioned stack."""

from stack_provisioner.core.host_workload import HostWorkload
from stack_provisioner.workload.backup_workload import BackupWorkload
from stack_provisioner.workload.monitor_workload import MonitorWorkload
from stack_provisioner.workload.stack_workload import StackWorkload


class HostStackWorkload(StackWorkload, HostWorkload):
    """Host application stack Workload implementation."""

    ...


class HostBackupWorkload(BackupWorkload, HostWorkload):
    """Host backup job Workload implementation."""

    ...


class HostMonitorWorkload(MonitorWorkload, HostWorkload):
    """Host monitoring job Workload implementation."""

    ...
