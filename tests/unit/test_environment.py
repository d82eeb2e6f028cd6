# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

import pytest

from stack_provisioner.config.literals import PlatformFamily
from stack_provisioner.exceptions import (
    MissingToolError,
    PrivilegeError,
    ToolInvocationError,
    UnsupportedPlatformError,
)
from stack_provisioner.managers.environment import (
    EnvironmentManager,
    Platform,
    parse_os_release,
    platform_family,
)

from .helpers import ProvisionerConfigFactory

DEBIAN = Platform(id="ubuntu", family=PlatformFamily.DEBIAN)
RHEL = Platform(id="rocky", family=PlatformFamily.RHEL)


def failing(*missing: tuple[str, ...]):
    """An exec side effect failing the check commands listed in `missing`."""

    def side_effect(command, *args, **kwargs):
        if tuple(command) in missing:
            raise ToolInvocationError(command, 127, None, "not found")
        return "ok\n"

    return side_effect


def test_parse_os_release():
    values = parse_os_release('NAME="Rocky Linux"\nID="rocky"\nID_LIKE="rhel centos fedora"\n# comment\n')

    assert values == {"NAME": "Rocky Linux", "ID": "rocky", "ID_LIKE": "rhel centos fedora"}


@pytest.mark.parametrize(
    "os_id,id_like,family",
    (
        ("ubuntu", "debian", PlatformFamily.DEBIAN),
        ("debian", "", PlatformFamily.DEBIAN),
        ("linuxmint", "ubuntu debian", PlatformFamily.DEBIAN),
        ("centos", "rhel fedora", PlatformFamily.RHEL),
        ("almalinux", "", PlatformFamily.RHEL),
        ("arch", "", None),
    ),
)
def test_platform_family(os_id: str, id_like: str, family):
    assert platform_family(os_id, id_like) == family


def test_detect_platform(workload, config):
    platform = EnvironmentManager(workload, config).detect_platform()

    assert platform.family == PlatformFamily.DEBIAN
    assert platform.name == "Ubuntu 22.04.4 LTS"
    assert platform.version == "22.04"


def test_detect_platform_unsupported(workload, tmp_path):
    os_release = tmp_path / "os-release"
    os_release.write_text("ID=arch\n")
    config = ProvisionerConfigFactory(root=tmp_path, os_release_file=os_release)

    with pytest.raises(UnsupportedPlatformError):
        EnvironmentManager(workload, config).detect_platform()


def test_detect_platform_missing_file(workload, tmp_path):
    config = ProvisionerConfigFactory(root=tmp_path, os_release_file=tmp_path / "missing")

    with pytest.raises(UnsupportedPlatformError):
        EnvironmentManager(workload, config).detect_platform()


def test_check_privileges(mocker, workload, config):
    mocker.patch("stack_provisioner.managers.environment.os.geteuid", return_value=1000)

    with pytest.raises(PrivilegeError):
        EnvironmentManager(workload, config).check()


def test_all_tools_present(mocker, workload, config):
    exec_mock = mocker.patch.object(workload, "exec", side_effect=failing())

    EnvironmentManager(workload, config).ensure_tools(DEBIAN)

    commands = [call.args[0] for call in exec_mock.call_args_list]
    assert all(command[0] != "apt-get" for command in commands)


def test_install_missing_curl_debian(mocker, workload, config):
    checks = iter([False, True])
    exec_mock = mocker.patch.object(workload, "exec", side_effect=failing())
    manager = EnvironmentManager(workload, config)
    mocker.patch.object(
        manager, "is_available", side_effect=lambda tool: next(checks) if tool.name == "curl" else True
    )

    manager.ensure_tools(DEBIAN)

    exec_mock.assert_any_call(["apt-get", "update", "-qq"])
    exec_mock.assert_any_call(["apt-get", "install", "-y", "curl"])


def test_install_docker_rhel(mocker, workload, config):
    checks = iter([False, True])
    exec_mock = mocker.patch.object(workload, "exec", side_effect=failing())
    manager = EnvironmentManager(workload, config)
    mocker.patch.object(
        manager, "is_available", side_effect=lambda tool: next(checks) if tool.name == "docker" else True
    )

    manager.ensure_tools(RHEL)

    exec_mock.assert_any_call(["yum", "install", "-y", "docker-ce", "docker-ce-cli", "containerd.io"])
    exec_mock.assert_any_call(["systemctl", "enable", "--now", "docker"])


def test_tool_still_missing_after_install(mocker, workload, config):
    mocker.patch.object(workload, "exec", side_effect=failing(("flock", "--version")))

    with pytest.raises(MissingToolError) as e:
        EnvironmentManager(workload, config).ensure_tools(DEBIAN)
    assert e.value.tool == "flock"


def test_install_failure(mocker, workload, config):
    mocker.patch.object(
        workload, "exec", side_effect=failing(("curl", "--version"), ("apt-get", "update", "-qq"))
    )

    with pytest.raises(MissingToolError) as e:
        EnvironmentManager(workload, config).ensure_tools(DEBIAN)
    assert e.value.tool == "curl"


def test_skip_docker_install(mocker, workload, tmp_path):
    config = ProvisionerConfigFactory(root=tmp_path, skip_docker_install=True)
    exec_mock = mocker.patch.object(workload, "exec", side_effect=failing(("docker", "--version")))

    with pytest.raises(MissingToolError) as e:
        EnvironmentManager(workload, config).ensure_tools(DEBIAN)

    assert e.value.tool == "docker"
    assert "skip-docker-install" in str(e.value)
    assert exec_mock.call_count == 1


def test_check(mocker, workload, config):
    mocker.patch("stack_provisioner.managers.environment.os.geteuid", return_value=0)
    mocker.patch.object(workload, "exec", side_effect=failing())

    assert EnvironmentManager(workload, config).check().family == PlatformFamily.DEBIAN
