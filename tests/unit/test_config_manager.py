import stat

import pytest
import yaml

from stack_provisioner.core.workload import DeploymentPaths
from stack_provisioner.exceptions import TemplateRenderError
from stack_provisioner.managers.config import (
    ConfigManager,
    env_value,
    shell_quote,
    sql_identifier,
    sql_literal,
)
from stack_provisioner.workload import HostStackWorkload

from .helpers import ALL_SERVICES, ProvisionerConfigFactory


def test_render_is_deterministic(config, credentials, workload):
    first = ConfigManager(config, credentials, workload).render()
    second = ConfigManager(config, credentials, workload).render()

    assert first == second
    assert set(first) == {
        workload.paths.compose_file,
        workload.paths.database_config_file,
        workload.paths.cache_config_file,
        workload.paths.init_sql_file,
        workload.paths.backup_script,
        workload.paths.monitor_script,
        workload.paths.firewall_rules_file,
    }


def test_render_does_not_write(config, credentials, workload):
    ConfigManager(config, credentials, workload).render()

    assert not workload.paths.root.exists()


def test_compose_manifest(config, credentials, workload):
    manager = ConfigManager(config, credentials, workload)
    manifest = yaml.safe_load(manager.compose_file.content)

    assert list(manifest["services"]) == ALL_SERVICES
    for service in manifest["services"].values():
        assert service["restart"] == "always"
        assert service["networks"] == ["new-api-network"]
    assert manifest["networks"]["new-api-network"]["driver"] == "bridge"
    assert manifest["services"]["new-api"]["ports"] == ["3000:3000"]
    assert manifest["services"]["mysql"]["ports"] == ["3306:3306"]
    assert "healthcheck" in manifest["services"]["new-api"]
    assert "mem_limit" not in manifest["services"]["mysql"]
    # Secrets are interpolated from the environment file.
    for secret in credentials.secrets.values():
        assert secret not in manager.compose_file.content
    assert "${MYSQL_PASSWORD}" in manifest["services"]["new-api"]["environment"]["SQL_DSN"]


def test_compose_memory_limits(tmp_path, credentials):
    config = ProvisionerConfigFactory(
        root=tmp_path, topology={"app_memory_limit": "2g", "database_memory_limit": "1g"}
    )

    manifest = ConfigManager(config, credentials, HostStackWorkload(DeploymentPaths(tmp_path))).compose_manifest

    assert manifest["services"]["new-api"]["mem_limit"] == "2g"
    assert manifest["services"]["mysql"]["mem_limit"] == "1g"
    assert "mem_limit" not in manifest["services"]["redis"]


def test_database_config(config, credentials, workload):
    content = ConfigManager(config, credentials, workload).database_config.content

    assert "require-secure-transport = ON" in content
    assert "bind-address = 0.0.0.0" in content
    assert "ssl-cert = /etc/mysql/ssl/server-cert.pem" in content
    assert "ssl-ca = /etc/mysql/ssl/ca.pem" in content
    assert "local-infile = 0" in content


def test_cache_config(config, credentials, workload):
    content = ConfigManager(config, credentials, workload).cache_config.content

    assert "maxmemory 256mb" in content
    assert "maxmemory-policy allkeys-lru" in content
    assert "appendonly yes" in content
    assert "protected-mode yes" in content


def test_init_sql(config, credentials, workload):
    artifact = ConfigManager(config, credentials, workload).init_sql

    assert artifact.permissions == 0o600
    assert (
        f"CREATE USER IF NOT EXISTS 'newapi'@'%' IDENTIFIED BY '{credentials.mysql_password}' REQUIRE SSL;"
        in artifact.content
    )
    assert "GRANT SELECT, INSERT, UPDATE, DELETE ON `new-api`.* TO 'newapi'@'%';" in artifact.content
    assert f"'{credentials.monitor_password}' WITH MAX_USER_CONNECTIONS 3;" in artifact.content
    assert "GRANT PROCESS, REPLICATION CLIENT ON *.* TO 'exporter'@'%';" in artifact.content
    assert "'external'" not in artifact.content
    assert artifact.content.rstrip().endswith("FLUSH PRIVILEGES;")


def test_init_sql_external_user(tmp_path, credentials):
    config = ProvisionerConfigFactory(root=tmp_path, external_access_ip="203.0.113.7")
    content = ConfigManager(config, credentials, HostStackWorkload(DeploymentPaths(tmp_path))).init_sql.content

    assert "CREATE USER IF NOT EXISTS 'external'@'203.0.113.7'" in content


def test_scripts(config, credentials, workload):
    manager = ConfigManager(config, credentials, workload)
    backup = manager.backup_script
    monitor = manager.monitor_script

    assert backup.permissions == monitor.permissions == 0o750
    assert "--ssl-mode=REQUIRED" in backup.content
    assert "RETENTION_DAYS=7" in backup.content
    assert credentials.mysql_root_password not in backup.content
    assert "THRESHOLD=85" in monitor.content
    assert "HEALTH_URL=http://127.0.0.1:3000/api/status" in monitor.content


def test_materialize_modes(config, credentials, workload, chown):
    written = ConfigManager(config, credentials, workload).materialize()

    assert len(written) == 7
    assert stat.S_IMODE(workload.paths.init_sql_file.stat().st_mode) == 0o600
    # The database entrypoint reads the init script after dropping to its own user.
    chown.assert_called_once_with(workload.paths.init_sql_file, 999, 999)
    assert stat.S_IMODE(workload.paths.backup_script.stat().st_mode) == 0o750
    assert stat.S_IMODE(workload.paths.compose_file.stat().st_mode) == 0o644


@pytest.mark.parametrize(
    "value,expected",
    (
        ("plain", "'plain'"),
        ("it's", "'it''s'"),
        ("back\\slash", "'back\\\\slash'"),
    ),
)
def test_sql_literal(value: str, expected: str):
    assert sql_literal(value) == expected


def test_sql_identifier():
    assert sql_identifier("new-api") == "`new-api`"
    assert sql_identifier("a`b") == "`a``b`"


@pytest.mark.parametrize(
    "value,expected",
    (
        ("Asia/Shanghai", "Asia/Shanghai"),
        ("abcDEF123", "abcDEF123"),
        ("with space", "'with space'"),
        ("a$b", "'a$b'"),
    ),
)
def test_env_value(value: str, expected: str):
    assert env_value(value) == expected


@pytest.mark.parametrize(
    "filter_,value",
    (
        (env_value, "line\nbreak"),
        (env_value, "nul\x00"),
        (env_value, "it's here"),
        (sql_literal, "line\rbreak"),
        (shell_quote, "line\nbreak"),
    ),
)
def test_unsafe_values_are_rejected(filter_, value: str):
    with pytest.raises(TemplateRenderError):
        filter_(value)


def test_shell_quote():
    assert shell_quote("/opt/new-api-prod") == "/opt/new-api-prod"
    assert shell_quote("/opt/new api") == "'/opt/new api'"
