from stack_provisioner.utils.database_users import MonitorUser, get_database_users

from .helpers import ProvisionerConfigFactory


def test_users_without_external_access(config):
    users = get_database_users(config)

    assert [user.username for user in users] == ["newapi", "exporter"]
    app_user = users[0]
    assert app_user.privileges == ["SELECT", "INSERT", "UPDATE", "DELETE"]
    assert app_user.scope == "database"
    assert app_user.require_ssl


def test_users_with_external_access(tmp_path):
    config = ProvisionerConfigFactory(root=tmp_path, external_access_ip="198.51.100.4")

    users = get_database_users(config)

    assert [user.username for user in users] == ["newapi", "external", "exporter"]
    assert users[1].host == "198.51.100.4"
    assert "ALL PRIVILEGES" not in users[1].privileges


def test_monitor_user():
    assert MonitorUser.scope == "global"
    assert MonitorUser.max_user_connections == 3
    assert MonitorUser.privileges == ["PROCESS", "REPLICATION CLIENT"]
