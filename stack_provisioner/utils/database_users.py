# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.
"""Definition of the database users and their grants."""

from pydantic import BaseModel, Field

from stack_provisioner.core.structured_config import ProvisionerConfig

APPLICATION_PRIVILEGES = ["SELECT", "INSERT", "UPDATE", "DELETE"]
MONITOR_PRIVILEGES = ["PROCESS", "REPLICATION CLIENT"]

MONITOR_MAX_CONNECTIONS = 3


class DatabaseUser(BaseModel):
    """Base model for database users."""

    username: str
    host: str = "%"
    password_attribute: str
    privileges: list[str] = Field(default=[])
    database_name: str | None = None
    require_ssl: bool = True
    max_user_connections: int | None = None

    @property
    def scope(self) -> str:
        """Scope of the grant, either one database or the whole server."""
        return "database" if self.database_name else "global"


def application_user(config: ProvisionerConfig) -> DatabaseUser:
    """The least-privilege user the application connects as."""
    return DatabaseUser(
        username=config.mysql_user,
        password_attribute="mysql_password",
        privileges=APPLICATION_PRIVILEGES,
        database_name=config.topology.database_name,
    )


def external_user(config: ProvisionerConfig) -> DatabaseUser | None:
    """A user restricted to the configured external address, if any."""
    if config.external_access_ip is None:
        return None
    return DatabaseUser(
        username="external",
        host=str(config.external_access_ip),
        password_attribute="mysql_password",
        privileges=APPLICATION_PRIVILEGES,
        database_name=config.topology.database_name,
    )


MonitorUser = DatabaseUser(
    username="exporter",
    password_attribute="monitor_password",
    privileges=MONITOR_PRIVILEGES,
    require_ssl=False,
    max_user_connections=MONITOR_MAX_CONNECTIONS,
)


def get_database_users(config: ProvisionerConfig) -> list[DatabaseUser]:
    """All the users created by the init script, in creation order."""
    users = [application_user(config)]
    if external := external_user(config):
        users.append(external)
    users.append(MonitorUser)
    return users
