# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

import json
import stat
import subprocess

import pytest

from stack_provisioner.core.host_workload import parse_compose_ps
from stack_provisioner.exceptions import ToolInvocationError

from .helpers import compose_ps_output


def test_parse_compose_ps_json_lines():
    output = compose_ps_output("new-api", "mysql")

    assert [container["Service"] for container in parse_compose_ps(output)] == ["new-api", "mysql"]


def test_parse_compose_ps_json_array():
    output = json.dumps([{"Service": "redis", "State": "running"}])

    assert parse_compose_ps(output) == [{"Service": "redis", "State": "running"}]


def test_parse_compose_ps_empty():
    assert parse_compose_ps("\n") == []


def test_running_services(mocker, workload):
    output = compose_ps_output("new-api", "mysql") + "\n" + compose_ps_output("redis", state="restarting")
    exec_mock = mocker.patch.object(workload, "exec", return_value=output)

    assert workload.running_services() == {"new-api", "mysql"}
    assert exec_mock.call_args.args[0][-4:] == ["ps", "--all", "--format", "json"]


def test_exec_failure(mocker, workload):
    mocker.patch(
        "stack_provisioner.core.host_workload.subprocess.check_output",
        side_effect=subprocess.CalledProcessError(2, ["docker", "compose"], output="out", stderr="err"),
    )

    with pytest.raises(ToolInvocationError) as e:
        workload.exec(["docker", "compose"])
    assert e.value.return_code == 2
    assert e.value.stderr == "err"


def test_exec_missing_binary(workload):
    with pytest.raises(ToolInvocationError) as e:
        workload.exec(["definitely-not-a-real-binary-name"])
    assert e.value.return_code == 127


def test_exec_env_is_merged(mocker, workload):
    check_output = mocker.patch(
        "stack_provisioner.core.host_workload.subprocess.check_output", return_value=""
    )
    mocker.patch.dict("os.environ", {"PATH": "/usr/bin"}, clear=True)

    workload.exec(["true"], env={"MYSQL_PWD": "secret"})

    assert check_output.call_args.kwargs["env"] == {"PATH": "/usr/bin", "MYSQL_PWD": "secret"}


def test_write_sets_mode_on_existing_file(workload, tmp_path):
    path = tmp_path / "secret.txt"
    path.write_text("old")
    path.chmod(0o644)

    workload.write("new", path, 0o600)

    assert path.read_text() == "new"
    assert stat.S_IMODE(path.stat().st_mode) == 0o600


def test_write_hands_file_to_owner(workload, tmp_path, chown):
    path = tmp_path / "server-key.pem"

    workload.write("key", path, 0o600, owner=999)

    chown.assert_called_once_with(path, 999, 999)
    assert stat.S_IMODE(path.stat().st_mode) == 0o600


def test_write_keeps_owner_by_default(workload, tmp_path, chown):
    workload.write("plain", tmp_path / "plain.txt")

    chown.assert_not_called()
