#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Structured configuration of the provisioner.

Every input of the workflow lives here and is validated before the first
phase runs. Nothing is read from the process environment.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, IPvAnyAddress, field_validator

from stack_provisioner.config.literals import (
    CRON_FILE,
    DEFAULT_ROOT,
    LOG_DIR,
    OS_RELEASE_FILE,
    StackPorts,
)

logger = logging.getLogger(__name__)


def _dashed(name: str) -> str:
    return name.replace("_", "-")


class BaseConfigModel(BaseModel):
    """Class to be used for defining the structured configuration options."""

    model_config = ConfigDict(alias_generator=_dashed, populate_by_name=True, extra="forbid")

    def __getitem__(self, x):
        """Return the item using the notation instance[key]."""
        return getattr(self, x.replace("-", "_"))


class Topology(BaseConfigModel):
    """Fixed service topology: images, ports and resource limits."""

    app_image: str = "wans10/llm-api:latest"
    database_image: str = "mysql:8.4.5"
    cache_image: str = "redis:latest"
    app_port: int = Field(default=StackPorts.APP_PORT.value, ge=1, le=65535)
    database_port: int = Field(default=StackPorts.DATABASE_PORT.value, ge=1, le=65535)
    database_name: str = Field(default="new-api", pattern=r"^[A-Za-z0-9_-]{1,64}$")
    database_time_zone: str = Field(default="+08:00", pattern=r"^[+-]\d{2}:\d{2}$")
    database_buffer_pool_size: str = Field(default="512M", pattern=r"^\d+[KMG]$")
    database_max_connections: int = Field(default=200, ge=1)
    cache_max_memory: str = Field(default="256mb", pattern=r"^\d+(kb|mb|gb)$")
    app_memory_limit: str | None = Field(default=None, pattern=r"^\d+[kmg]$")
    database_memory_limit: str | None = Field(default=None, pattern=r"^\d+[kmg]$")
    cache_memory_limit: str | None = Field(default=None, pattern=r"^\d+[kmg]$")

    @field_validator("app_image", "database_image", "cache_image")
    @classmethod
    def image_reference(cls, value: str) -> str:
        """Image references never contain whitespace."""
        if not value or any(char.isspace() for char in value):
            raise ValueError(f"invalid image reference: {value!r}")
        return value


class ReadinessPolicy(BaseConfigModel):
    """Bounded retry budget of the readiness poll."""

    attempts: int = Field(default=30, ge=1)
    delay: float = Field(default=2.0, ge=0)
    probe_timeout: float = Field(default=5.0, gt=0)
    log_tail: int = Field(default=200, ge=1)


class CertificatePolicy(BaseConfigModel):
    """Parameters of the private certificate authority."""

    key_size: int = Field(default=4096, ge=2048)
    validity_days: int = Field(default=3650, ge=1)
    country: str = Field(default="CN", min_length=2, max_length=2)
    state: str = "Shanghai"
    locality: str = "Shanghai"
    organization: str = "NewAPI"


class MaintenancePolicy(BaseConfigModel):
    """Backup and monitoring job parameters."""

    backup_retention_days: int = Field(default=7, ge=1)
    disk_usage_threshold: int = Field(default=85, ge=1, le=100)
    cron_file: Path = CRON_FILE
    log_dir: Path = LOG_DIR
    run_as: str = Field(default="root", pattern=r"^[a-z_][a-z0-9_-]{0,31}$")


class ProvisionerConfig(BaseConfigModel):
    """The structured configuration of one deployment."""

    root: Path = DEFAULT_ROOT
    timezone: str = Field(default="Asia/Shanghai", pattern=r"^[A-Za-z_]+(/[A-Za-z0-9_+-]+)*$")
    mysql_user: str = Field(default="newapi", pattern=r"^[a-z][a-z0-9_]{0,31}$")
    external_access_ip: IPvAnyAddress | None = None
    skip_docker_install: bool = False
    skip_firewall: bool = False
    os_release_file: Path = OS_RELEASE_FILE
    topology: Topology = Field(default_factory=Topology)
    readiness: ReadinessPolicy = Field(default_factory=ReadinessPolicy)
    certificates: CertificatePolicy = Field(default_factory=CertificatePolicy)
    maintenance: MaintenancePolicy = Field(default_factory=MaintenancePolicy)

    @field_validator("root")
    @classmethod
    def absolute_root(cls, value: Path) -> Path:
        """The deployment root is referenced from cron, so it must be absolute."""
        if not value.is_absolute():
            raise ValueError(f"deployment root must be an absolute path, got {value}")
        return value

    @field_validator("external_access_ip")
    @classmethod
    def routable_address(cls, value):
        """The external grant target must name a single host."""
        if value is None:
            return value
        if value.is_unspecified or value.is_multicast or value.is_loopback:
            raise ValueError(f"{value} cannot be used as an external access address")
        return value

    @classmethod
    def from_file(cls, path: Path) -> ProvisionerConfig:
        """Loads the config from a YAML file.

        Raises:
            OSError, ValueError, ValidationError
        """
        try:
            content = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"{path} is not valid YAML: {e}") from e
        if not isinstance(content, dict):
            raise ValueError(f"{path} must contain a mapping")
        logger.debug("Loaded configuration from %s", path)
        return cls.model_validate(content)

    def with_overrides(self, **overrides: Any) -> ProvisionerConfig:
        """Returns a validated copy with the non-None overrides applied."""
        values = {key: value for key, value in overrides.items() if value is not None}
        if not values:
            return self
        return type(self).model_validate({**self.model_dump(), **values})
