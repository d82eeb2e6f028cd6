#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.
"""The different config models."""

from dataclasses import dataclass, field
from importlib import resources as impresources
from importlib.abc import Traversable

from stack_provisioner import templates
from stack_provisioner.config.literals import PlatformFamily

TEMPLATE_DIRECTORY = impresources.files(templates)


@dataclass(frozen=True)
class RecurringJob:
    """A maintenance job registered in the host scheduler."""

    name: str
    schedule: str
    script: str
    log_file: str


BACKUP_JOB = RecurringJob(
    name="backup", schedule="0 2 * * *", script="backup.sh", log_file="backup.log"
)
MONITOR_JOB = RecurringJob(
    name="monitor", schedule="0 * * * *", script="monitor.sh", log_file="monitor.log"
)


@dataclass(frozen=True)
class RequiredTool:
    """An external tool the workflow shells out to."""

    name: str
    check: list[str]
    package: str
    container_runtime: bool = False


REQUIRED_TOOLS = (
    RequiredTool(name="docker", check=["docker", "--version"], package="docker", container_runtime=True),
    RequiredTool(
        name="docker compose",
        check=["docker", "compose", "version"],
        package="docker-compose-plugin",
        container_runtime=True,
    ),
    RequiredTool(name="curl", check=["curl", "--version"], package="curl"),
    RequiredTool(name="flock", check=["flock", "--version"], package="util-linux"),
)


@dataclass(frozen=True)
class InstallProcedure:
    """The package manager commands of a platform family."""

    family: PlatformFamily
    refresh: list[str]
    install: list[str]
    docker: list[list[str]] = field(default_factory=list)


DOCKER_INSTALL_SCRIPT = "/tmp/get-docker.sh"

INSTALL_PROCEDURES = {
    PlatformFamily.DEBIAN: InstallProcedure(
        family=PlatformFamily.DEBIAN,
        refresh=["apt-get", "update", "-qq"],
        install=["apt-get", "install", "-y"],
        docker=[
            ["curl", "-fsSL", "https://get.docker.com", "-o", DOCKER_INSTALL_SCRIPT],
            ["sh", DOCKER_INSTALL_SCRIPT],
            ["rm", "-f", DOCKER_INSTALL_SCRIPT],
        ],
    ),
    PlatformFamily.RHEL: InstallProcedure(
        family=PlatformFamily.RHEL,
        refresh=["yum", "install", "-y", "yum-utils"],
        install=["yum", "install", "-y"],
        docker=[
            [
                "yum-config-manager",
                "--add-repo",
                "https://download.docker.com/linux/centos/docker-ce.repo",
            ],
            ["yum", "install", "-y", "docker-ce", "docker-ce-cli", "containerd.io"],
            ["systemctl", "enable", "--now", "docker"],
        ],
    ),
}

TEMPLATES = {
    "database_config": TEMPLATE_DIRECTORY / "mysql.cnf.j2",
    "cache_config": TEMPLATE_DIRECTORY / "redis.conf.j2",
    "init_sql": TEMPLATE_DIRECTORY / "01-setup.sql.j2",
    "env_file": TEMPLATE_DIRECTORY / "env.j2",
    "backup_script": TEMPLATE_DIRECTORY / "backup.sh.j2",
    "monitor_script": TEMPLATE_DIRECTORY / "monitor.sh.j2",
    "firewall_rules": TEMPLATE_DIRECTORY / "firewall.rules.j2",
}


def template_name(template: Traversable) -> str:
    """Name of a packaged template, as understood by the jinja2 loader."""
    return template.name
