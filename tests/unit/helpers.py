import json

import factory

from stack_provisioner.config.literals import Services
from stack_provisioner.core.structured_config import ProvisionerConfig


class ProvisionerConfigFactory(factory.Factory):
    class Meta:  # noqa
        model = ProvisionerConfig

    timezone = "Asia/Shanghai"
    mysql_user = "newapi"
    external_access_ip = None
    skip_docker_install = False
    skip_firewall = False
    readiness = {"attempts": 3, "delay": 0.0}
    certificates = {"key_size": 2048}


def compose_ps_output(*services: str, state: str = "running") -> str:
    """Output of `docker compose ps --format json`, one object per line."""
    return "\n".join(
        json.dumps({"Service": service, "Name": service, "State": state}) for service in services
    )


ALL_SERVICES = [service.value for service in Services]
