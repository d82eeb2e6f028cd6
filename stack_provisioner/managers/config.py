#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Manager for rendering the stack configuration.

Rendering is a pure function of the structured config, the credential set
and the deployment paths: identical inputs give byte-identical artifacts.
Writing them out is a separate step.
"""

import logging
import re
import shlex
from dataclasses import dataclass
from importlib.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from stack_provisioner.config.literals import (
    APP_SSL_DIR,
    CA_ROLE,
    CLIENT_ROLE,
    CONFIG_FILE_MODE,
    DATABASE_SSL_DIR,
    DATABASE_UID,
    HEALTH_STATUS_PATH,
    LOCALHOST,
    PROJECT_NAME,
    SCRIPT_MODE,
    SECRET_FILE_MODE,
    SERVER_ROLE,
    CredentialKeys,
    EnvKeys,
    Services,
    StackPorts,
)
from stack_provisioner.config.models import TEMPLATE_DIRECTORY, TEMPLATES, template_name
from stack_provisioner.core.structured_config import ProvisionerConfig
from stack_provisioner.core.workload import WorkloadBase
from stack_provisioner.exceptions import TemplateRenderError
from stack_provisioner.managers.firewall import build_firewall_rules
from stack_provisioner.state.credentials import CredentialSet
from stack_provisioner.utils.database_users import get_database_users

logger = logging.getLogger(__name__)

NETWORK_NAME = f"{PROJECT_NAME}-network"
_PLAIN_ENV_VALUE = re.compile(r"[A-Za-z0-9_./:+-]*")


@dataclass(frozen=True)
class RenderedArtifact:
    """A rendered configuration file."""

    path: Path
    content: str
    permissions: int = CONFIG_FILE_MODE
    owner: int | None = None


def _check_printable(value: str, grammar: str) -> str:
    if any(char in value for char in "\n\r\x00"):
        raise TemplateRenderError(f"value cannot be embedded in {grammar}: contains a line break or NUL")
    return value


def sql_literal(value: Any) -> str:
    """Quotes a value as a SQL string literal."""
    text = _check_printable(str(value), "SQL")
    return "'" + text.replace("\\", "\\\\").replace("'", "''") + "'"


def sql_identifier(value: Any) -> str:
    """Quotes a value as a SQL identifier."""
    text = _check_printable(str(value), "SQL")
    return "`" + text.replace("`", "``") + "`"


def shell_quote(value: Any) -> str:
    """Quotes a value as a single shell word."""
    return shlex.quote(_check_printable(str(value), "shell"))


def env_value(value: Any) -> str:
    """Formats a value for a KEY=VALUE environment file."""
    text = _check_printable(str(value), "an environment file")
    if _PLAIN_ENV_VALUE.fullmatch(text):
        return text
    if "'" in text:
        raise TemplateRenderError("value cannot be embedded in an environment file: contains a single quote")
    return f"'{text}'"


class TemplateRenderer:
    """Jinja2 environment over the packaged templates."""

    def __init__(self) -> None:
        self.environment = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIRECTORY)),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )
        self.environment.filters.update(
            sql_literal=sql_literal,
            sql_identifier=sql_identifier,
            shell_quote=shell_quote,
            env_value=env_value,
        )

    def render(self, template: Traversable, **context: Any) -> str:
        """Renders a packaged template."""
        try:
            return self.environment.get_template(template_name(template)).render(**context)
        except TemplateError as e:
            raise TemplateRenderError(f"cannot render {template_name(template)}: {e}") from e


def render_env_file(
    renderer: TemplateRenderer, config: ProvisionerConfig, credentials: CredentialSet, path: Path
) -> RenderedArtifact:
    """The environment file consumed by the container runtime."""
    settings = {
        EnvKeys.TIMEZONE.value: config.timezone,
        EnvKeys.BACKUP_RETENTION_DAYS.value: config.maintenance.backup_retention_days,
    }
    content = renderer.render(
        TEMPLATES["env_file"], credentials=credentials.as_env(), settings=settings
    )
    return RenderedArtifact(path=path, content=content, permissions=SECRET_FILE_MODE)


class ConfigManager:
    """Renders and writes every configuration artifact of the stack."""

    def __init__(
        self,
        config: ProvisionerConfig,
        credentials: CredentialSet,
        workload: WorkloadBase,
        renderer: TemplateRenderer | None = None,
    ):
        self.config = config
        self.credentials = credentials
        self.workload = workload
        self.paths = workload.paths
        self.renderer = renderer or TemplateRenderer()

    @property
    def health_url(self) -> str:
        """The application status endpoint, as reached from the host."""
        return f"http://{LOCALHOST}:{self.config.topology.app_port}{HEALTH_STATUS_PATH}"

    @property
    def compose_manifest(self) -> dict:
        """The compose manifest declaring the three services."""
        topology = self.config.topology
        app = {
            "image": topology.app_image,
            "container_name": Services.APP.value,
            "restart": "always",
            "command": "--log-dir /app/logs",
            "ports": [f"{topology.app_port}:{StackPorts.APP_PORT.value}"],
            "volumes": [
                "./data:/data",
                "./logs:/app/logs",
                f"./ssl/{CLIENT_ROLE.name}:{APP_SSL_DIR}:ro",
            ],
            "environment": {
                "SQL_DSN": (
                    f"${{{CredentialKeys.MYSQL_USER.value}}}:${{{CredentialKeys.MYSQL_PASSWORD.value}}}"
                    f"@tcp({Services.DATABASE.value}:{StackPorts.DATABASE_PORT.value})/{topology.database_name}"
                    "?tls=custom&charset=utf8mb4&parseTime=True&loc=Local"
                ),
                "REDIS_CONN_STRING": (
                    f"redis://:${{{CredentialKeys.REDIS_PASSWORD.value}}}"
                    f"@{Services.CACHE.value}:{StackPorts.CACHE_PORT.value}"
                ),
                "TZ": f"${{{EnvKeys.TIMEZONE.value}}}",
                "ERROR_LOG_ENABLED": "true",
                "SESSION_SECRET": f"${{{CredentialKeys.SESSION_SECRET.value}}}",
                "MYSQL_SSL_CA": f"{APP_SSL_DIR}/{CA_ROLE.cert_file}",
                "MYSQL_SSL_CERT": f"{APP_SSL_DIR}/{CLIENT_ROLE.cert_file}",
                "MYSQL_SSL_KEY": f"{APP_SSL_DIR}/{CLIENT_ROLE.key_file}",
            },
            "depends_on": [Services.CACHE.value, Services.DATABASE.value],
            "healthcheck": {
                "test": [
                    "CMD-SHELL",
                    f"wget -q -O - http://localhost:{StackPorts.APP_PORT.value}{HEALTH_STATUS_PATH}"
                    " | grep -q '\"success\":[[:space:]]*true'",
                ],
                "interval": "30s",
                "timeout": "10s",
                "retries": 3,
            },
            "networks": [NETWORK_NAME],
        }
        cache = {
            "image": topology.cache_image,
            "container_name": Services.CACHE.value,
            "restart": "always",
            "command": [
                "redis-server",
                "/usr/local/etc/redis/redis.conf",
                "--requirepass",
                f"${{{CredentialKeys.REDIS_PASSWORD.value}}}",
            ],
            "volumes": [
                "redis_data:/data",
                "./redis/redis.conf:/usr/local/etc/redis/redis.conf:ro",
            ],
            "networks": [NETWORK_NAME],
        }
        database = {
            "image": topology.database_image,
            "container_name": Services.DATABASE.value,
            "restart": "always",
            "ports": [f"{topology.database_port}:{StackPorts.DATABASE_PORT.value}"],
            "environment": {
                "MYSQL_ROOT_PASSWORD": f"${{{CredentialKeys.MYSQL_ROOT_PASSWORD.value}}}",
                "MYSQL_DATABASE": topology.database_name,
                "TZ": f"${{{EnvKeys.TIMEZONE.value}}}",
            },
            "volumes": [
                "mysql_data:/var/lib/mysql",
                f"./ssl/{SERVER_ROLE.name}:{DATABASE_SSL_DIR}:ro",
                "./mysql/conf.d:/etc/mysql/conf.d:ro",
                "./mysql/init:/docker-entrypoint-initdb.d:ro",
            ],
            "networks": [NETWORK_NAME],
        }
        for service, limit in (
            (app, topology.app_memory_limit),
            (cache, topology.cache_memory_limit),
            (database, topology.database_memory_limit),
        ):
            if limit:
                service["mem_limit"] = limit

        return {
            "name": PROJECT_NAME,
            "services": {
                Services.APP.value: app,
                Services.CACHE.value: cache,
                Services.DATABASE.value: database,
            },
            "volumes": {"mysql_data": {}, "redis_data": {}},
            "networks": {NETWORK_NAME: {"driver": "bridge"}},
        }

    @property
    def compose_file(self) -> RenderedArtifact:
        """The compose manifest."""
        content = yaml.safe_dump(self.compose_manifest, sort_keys=False, default_flow_style=False)
        return RenderedArtifact(path=self.paths.compose_file, content=content)

    @property
    def database_config(self) -> RenderedArtifact:
        """The mysqld config: mandatory TLS, all interfaces, hardened defaults."""
        content = self.renderer.render(
            TEMPLATES["database_config"],
            topology=self.config.topology,
            port=StackPorts.DATABASE_PORT.value,
            ssl_dir=DATABASE_SSL_DIR,
            ca_file=CA_ROLE.cert_file,
            server=SERVER_ROLE,
        )
        return RenderedArtifact(path=self.paths.database_config_file, content=content)

    @property
    def cache_config(self) -> RenderedArtifact:
        """The redis config: bounded LRU memory, RDB and AOF persistence."""
        content = self.renderer.render(
            TEMPLATES["cache_config"], topology=self.config.topology, port=StackPorts.CACHE_PORT.value
        )
        return RenderedArtifact(path=self.paths.cache_config_file, content=content)

    @property
    def init_sql(self) -> RenderedArtifact:
        """The database init script creating the least-privilege users."""
        content = self.renderer.render(
            TEMPLATES["init_sql"],
            users=get_database_users(self.config),
            credentials=self.credentials.model_dump(),
        )
        return RenderedArtifact(
            path=self.paths.init_sql_file,
            content=content,
            permissions=SECRET_FILE_MODE,
            owner=DATABASE_UID,
        )

    @property
    def backup_script(self) -> RenderedArtifact:
        """The daily backup job."""
        content = self.renderer.render(
            TEMPLATES["backup_script"],
            env_file=self.paths.env_file,
            backup_dir=self.paths.backups_path,
            data_dir=self.paths.data_path,
            retention_days=self.config.maintenance.backup_retention_days,
            database=Services.DATABASE.value,
            cache=Services.CACHE.value,
        )
        return RenderedArtifact(path=self.paths.backup_script, content=content, permissions=SCRIPT_MODE)

    @property
    def monitor_script(self) -> RenderedArtifact:
        """The hourly monitoring job."""
        content = self.renderer.render(
            TEMPLATES["monitor_script"],
            root=self.paths.root,
            compose_file=self.paths.compose_file,
            health_url=self.health_url,
            disk_usage_threshold=self.config.maintenance.disk_usage_threshold,
            project=PROJECT_NAME,
            services=[service.value for service in Services],
        )
        return RenderedArtifact(path=self.paths.monitor_script, content=content, permissions=SCRIPT_MODE)

    @property
    def firewall_rules(self) -> RenderedArtifact:
        """The firewall rule set, for the operator's reference."""
        content = self.renderer.render(
            TEMPLATES["firewall_rules"], rules=build_firewall_rules(self.config)
        )
        return RenderedArtifact(path=self.paths.firewall_rules_file, content=content)

    def build_artifacts(self) -> list[RenderedArtifact]:
        """Builds every artifact, in write order."""
        return [
            self.compose_file,
            self.database_config,
            self.cache_config,
            self.init_sql,
            self.backup_script,
            self.monitor_script,
            self.firewall_rules,
        ]

    def render(self) -> dict[Path, RenderedArtifact]:
        """The artifacts by target path."""
        return {artifact.path: artifact for artifact in self.build_artifacts()}

    def materialize(self) -> list[Path]:
        """Writes every artifact to the deployment root."""
        written = []
        for artifact in self.build_artifacts():
            self.workload.write(artifact.content, artifact.path, artifact.permissions, artifact.owner)
            logger.debug("Rendered %s", artifact.path)
            written.append(artifact.path)
        logger.info(f"Rendered {len(written)} configuration files.")
        return written
