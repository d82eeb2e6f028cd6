from pathlib import Path

import pytest
from typer.testing import CliRunner

from stack_provisioner.cli import app
from stack_provisioner.exceptions import PrivilegeError, ReadinessTimeoutError
from stack_provisioner.status import ActivationStatus

runner = CliRunner()


@pytest.fixture
def provisioner(mocker):
    return mocker.patch("stack_provisioner.cli.Provisioner")


@pytest.mark.parametrize(
    "status,exit_code",
    (
        (ActivationStatus.HEALTHY, 0),
        (ActivationStatus.DEGRADED_BUT_RUNNING, 0),
    ),
)
def test_deploy_exit_code(provisioner, status: ActivationStatus, exit_code: int):
    provisioner.return_value.run.return_value.status = status

    result = runner.invoke(app, ["deploy", "--root", "/srv/new-api"])

    assert result.exit_code == exit_code
    config = provisioner.call_args.args[0]
    assert config.root == Path("/srv/new-api")


def test_deploy_options(provisioner):
    provisioner.return_value.run.return_value.status = ActivationStatus.HEALTHY

    result = runner.invoke(
        app,
        [
            "deploy",
            "--skip-docker-install",
            "--skip-firewall",
            "--external-access-ip",
            "203.0.113.7",
            "--readiness-attempts",
            "10",
            "--readiness-delay",
            "0.5",
        ],
    )

    assert result.exit_code == 0
    config = provisioner.call_args.args[0]
    assert config.skip_docker_install
    assert config.skip_firewall
    assert str(config.external_access_ip) == "203.0.113.7"
    assert config.readiness.attempts == 10
    assert config.readiness.delay == 0.5


@pytest.mark.parametrize(
    "error,exit_code",
    (
        (PrivilegeError("the provisioner must run as root"), 1),
        (ReadinessTimeoutError(30, 2.0), 1),
        (KeyboardInterrupt(), 130),
    ),
)
def test_deploy_failures(provisioner, error: BaseException, exit_code: int):
    provisioner.return_value.run.side_effect = error

    result = runner.invoke(app, ["deploy"])

    assert result.exit_code == exit_code


def test_deploy_invalid_external_address(provisioner):
    result = runner.invoke(app, ["deploy", "--external-access-ip", "0.0.0.0"])

    assert result.exit_code == 2
    provisioner.assert_not_called()


def test_deploy_config_file(provisioner, tmp_path: Path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("root: /srv/from-file\nskip-firewall: true\n")
    provisioner.return_value.run.return_value.status = ActivationStatus.HEALTHY

    result = runner.invoke(app, ["deploy", "--config", str(config_file)])

    assert result.exit_code == 0
    config = provisioner.call_args.args[0]
    assert config.root == Path("/srv/from-file")
    assert config.skip_firewall


def test_deploy_malformed_config_file(provisioner, tmp_path: Path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("root: [unclosed\n")

    result = runner.invoke(app, ["deploy", "--config", str(config_file)])

    assert result.exit_code == 2
    provisioner.assert_not_called()


def test_verify(provisioner):
    provisioner.return_value.verify.return_value.status = ActivationStatus.HEALTHY

    result = runner.invoke(app, ["verify"])

    assert result.exit_code == 0
    provisioner.return_value.verify.assert_called_once()
    provisioner.return_value.run.assert_not_called()


def test_backup(provisioner):
    provisioner.return_value.backup.return_value = "Backup done\n"

    result = runner.invoke(app, ["backup"])

    assert result.exit_code == 0
    provisioner.return_value.backup.assert_called_once()


def test_help():
    result = runner.invoke(app, ["deploy", "--help"])

    assert result.exit_code == 0
    assert "Usage" in result.output
