#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Abstract workload definition for the provisioned stack."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path

from stack_provisioner.config.literals import (
    CA_ROLE,
    CLIENT_ROLE,
    CONFIG_FILE_MODE,
    SERVER_ROLE,
    CertificateRole,
)


class DeploymentPaths:
    """Object to store the paths of a deployment root."""

    def __init__(self, root: Path):
        self.root = root
        self.data_path = root / "data"
        self.logs_path = root / "logs"
        self.mysql_path = root / "mysql"
        self.redis_path = root / "redis"
        self.ssl_path = root / "ssl"
        self.scripts_path = root / "scripts"
        self.backups_path = root / "backups"

    def __eq__(self, other: object) -> bool:
        """Two path sets are equal when they share a root."""
        if not isinstance(other, DeploymentPaths):
            return NotImplemented
        return self.root == other.root

    @property
    def directories(self) -> tuple[Path, ...]:
        """All the directories of the deployment tree."""
        return (
            self.data_path,
            self.logs_path,
            self.mysql_path / "conf.d",
            self.mysql_path / "init",
            self.mysql_path / "backup",
            self.redis_path,
            self.ssl_path / CA_ROLE.name,
            self.ssl_path / SERVER_ROLE.name,
            self.ssl_path / CLIENT_ROLE.name,
            self.scripts_path,
            self.backups_path,
        )

    @property
    def env_file(self) -> Path:
        """The generated environment file holding the credential set."""
        return self.root / ".env"

    @property
    def compose_file(self) -> Path:
        """The compose manifest."""
        return self.root / "docker-compose.yml"

    @property
    def database_config_file(self) -> Path:
        """The mysqld config file."""
        return self.mysql_path / "conf.d" / "mysql.cnf"

    @property
    def init_sql_file(self) -> Path:
        """The database init script."""
        return self.mysql_path / "init" / "01-setup.sql"

    @property
    def cache_config_file(self) -> Path:
        """The redis config file."""
        return self.redis_path / "redis.conf"

    @property
    def backup_script(self) -> Path:
        """The daily backup job."""
        return self.scripts_path / "backup.sh"

    @property
    def monitor_script(self) -> Path:
        """The hourly monitoring job."""
        return self.scripts_path / "monitor.sh"

    @property
    def firewall_rules_file(self) -> Path:
        """The rendered firewall rule set."""
        return self.root / "firewall.rules"

    @property
    def lock_file(self) -> Path:
        """Lock shared by the provisioner and the recurring jobs."""
        return self.root / ".provision.lock"

    def cert_dir(self, role: CertificateRole) -> Path:
        """Directory of the given certificate role."""
        return self.ssl_path / role.name

    def cert_file(self, role: CertificateRole) -> Path:
        """Certificate of the given role."""
        return self.cert_dir(role) / role.cert_file

    def key_file(self, role: CertificateRole) -> Path:
        """Private key of the given role."""
        return self.cert_dir(role) / role.key_file

    def ca_copy(self, role: CertificateRole) -> Path:
        """The CA certificate copied next to a leaf."""
        return self.cert_dir(role) / CA_ROLE.cert_file

    def tls_files(self) -> tuple[Path, ...]:
        """Tuple of all TLS files."""
        return (
            self.cert_file(CA_ROLE),
            self.key_file(CA_ROLE),
            self.cert_file(SERVER_ROLE),
            self.key_file(SERVER_ROLE),
            self.ca_copy(SERVER_ROLE),
            self.cert_file(CLIENT_ROLE),
            self.key_file(CLIENT_ROLE),
            self.ca_copy(CLIENT_ROLE),
        )


class WorkloadBase(ABC):
    """Base interface for common workload operations."""

    paths: DeploymentPaths

    def __init__(self, paths: DeploymentPaths):
        self.paths = paths

    @abstractmethod
    def start(self) -> None:
        """Starts the workload service."""
        ...

    @abstractmethod
    def write(
        self,
        content: str,
        path: Path,
        permissions: int = CONFIG_FILE_MODE,
        owner: int | None = None,
    ) -> None:
        """Writes content to a workload file.

        Args:
            content: string of content to write
            path: the full filepath to write to
            permissions: the file mode bits. Default 0o644
            owner: uid and gid to hand the file to, when a container user reads it
        """
        ...

    @abstractmethod
    def exec(
        self,
        command: list[str] | str,
        env: Mapping[str, str] | None = None,
        working_dir: Path | None = None,
    ) -> str:
        """Runs a command on the host."""
        ...
