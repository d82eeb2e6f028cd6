from pathlib import Path

import pytest

from stack_provisioner.core.structured_config import ProvisionerConfig
from stack_provisioner.core.workload import DeploymentPaths
from stack_provisioner.state.credentials import CredentialSet
from stack_provisioner.workload import HostStackWorkload

from .helpers import ProvisionerConfigFactory

UBUNTU_OS_RELEASE = """PRETTY_NAME="Ubuntu 22.04.4 LTS"
NAME="Ubuntu"
VERSION_ID="22.04"
ID=ubuntu
ID_LIKE=debian
"""


@pytest.fixture(autouse=True)
def tenacity_wait(mocker):
    mocker.patch("tenacity.nap.time")


@pytest.fixture(autouse=True)
def chown(mocker):
    return mocker.patch("stack_provisioner.core.host_workload.os.chown")


@pytest.fixture
def os_release(tmp_path: Path) -> Path:
    path = tmp_path / "os-release"
    path.write_text(UBUNTU_OS_RELEASE)
    return path


@pytest.fixture
def config(tmp_path: Path, os_release: Path) -> ProvisionerConfig:
    return ProvisionerConfigFactory(
        root=tmp_path / "new-api-prod",
        os_release_file=os_release,
        maintenance={
            "cron_file": tmp_path / "cron.d" / "new-api",
            "log_dir": tmp_path / "log" / "new-api",
        },
    )


@pytest.fixture
def paths(config: ProvisionerConfig) -> DeploymentPaths:
    return DeploymentPaths(config.root)


@pytest.fixture
def workload(paths: DeploymentPaths) -> HostStackWorkload:
    return HostStackWorkload(paths)


@pytest.fixture
def credentials() -> CredentialSet:
    return CredentialSet(
        mysql_root_password="RootPassword0123456789abcdefABCD",
        mysql_password="UserPassword0123456789abcdefABCD",
        redis_password="CachePassword123456789abcdefABCD",
        session_secret="SessionSecret0123456789abcdefABCDEFGHIJ0123456789",
    )
