# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.
"""Literal string for the provisioned stack.

This module should contain the literals used by the provisioner (paths, enums, etc).
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

LOCALHOST = "127.0.0.1"

PROJECT_NAME = "new-api"


class Services(str, Enum):
    """The three services declared in the compose manifest."""

    APP = "new-api"
    CACHE = "redis"
    DATABASE = "mysql"


class StackPorts(int, Enum):
    """The default ports of the stack."""

    APP_PORT = 3000
    DATABASE_PORT = 3306
    CACHE_PORT = 6379
    SSH_PORT = 22
    HTTP_PORT = 80
    HTTPS_PORT = 443


class CredentialKeys(str, Enum):
    """The environment file keys of the generated credentials."""

    MYSQL_ROOT_PASSWORD = "MYSQL_ROOT_PASSWORD"
    MYSQL_USER = "MYSQL_USER"
    MYSQL_PASSWORD = "MYSQL_PASSWORD"
    REDIS_PASSWORD = "REDIS_PASSWORD"
    SESSION_SECRET = "SESSION_SECRET"


class EnvKeys(str, Enum):
    """Non secret keys of the environment file."""

    TIMEZONE = "TZ"
    BACKUP_RETENTION_DAYS = "BACKUP_RETENTION_DAYS"


SECRET_KEYS = [
    CredentialKeys.MYSQL_ROOT_PASSWORD,
    CredentialKeys.MYSQL_PASSWORD,
    CredentialKeys.REDIS_PASSWORD,
    CredentialKeys.SESSION_SECRET,
]


class PlatformFamily(str, Enum):
    """Operating system families with a known install procedure."""

    DEBIAN = "debian"
    RHEL = "rhel"


# uid and gid of the mysql user inside the official database image.
DATABASE_UID = 999


@dataclass(frozen=True)
class CertificateRole:
    """A certificate role and the file names it produces."""

    name: str
    common_name: str
    cert_file: str
    key_file: str
    key_owner: int | None = None


CA_ROLE = CertificateRole(
    name="ca", common_name="MySQL-CA", cert_file="ca.pem", key_file="ca-key.pem"
)
SERVER_ROLE = CertificateRole(
    name="server",
    common_name="mysql",
    cert_file="server-cert.pem",
    key_file="server-key.pem",
    key_owner=DATABASE_UID,
)
CLIENT_ROLE = CertificateRole(
    name="client",
    common_name="mysql-client",
    cert_file="client-cert.pem",
    key_file="client-key.pem",
)

LEAF_ROLES = (SERVER_ROLE, CLIENT_ROLE)

# In-container locations of the mounted certificates.
DATABASE_SSL_DIR = "/etc/mysql/ssl"
APP_SSL_DIR = "/app/ssl/client"

HEALTH_STATUS_PATH = "/api/status"

CRON_FILE = Path("/etc/cron.d/new-api")
LOG_DIR = Path("/var/log/new-api")
OS_RELEASE_FILE = Path("/etc/os-release")

DEFAULT_ROOT = Path("/opt/new-api-prod")

SECRET_LENGTH = 32
SESSION_SECRET_LENGTH = 48
MIN_SECRET_LENGTH = 16

PRIVATE_KEY_MODE = 0o600
CERTIFICATE_MODE = 0o644
SECRET_FILE_MODE = 0o600
CONFIG_FILE_MODE = 0o644
SCRIPT_MODE = 0o750
