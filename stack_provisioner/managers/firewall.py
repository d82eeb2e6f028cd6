#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Manager for the host firewall."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from stack_provisioner.config.literals import StackPorts
from stack_provisioner.core.host_workload import HostWorkload
from stack_provisioner.core.structured_config import ProvisionerConfig

logger = logging.getLogger(__name__)


class FirewallBackend(str, Enum):
    """The supported firewall front-ends."""

    UFW = "ufw"
    FIREWALLD = "firewall-cmd"


@dataclass(frozen=True)
class FirewallRule:
    """An allow rule for one port."""

    port: int
    comment: str
    protocol: str = "tcp"
    source: str | None = None

    def ufw_args(self) -> list[str]:
        """The ufw command allowing this rule."""
        if self.source:
            return [
                "ufw", "allow", "proto", self.protocol, "from", self.source,
                "to", "any", "port", str(self.port), "comment", self.comment,
            ]  # fmt: skip
        return ["ufw", "allow", f"{self.port}/{self.protocol}", "comment", self.comment]

    def firewalld_args(self) -> list[str]:
        """The firewall-cmd command allowing this rule."""
        if self.source:
            family = "ipv6" if ":" in self.source else "ipv4"
            rich_rule = (
                f'rule family="{family}" source address="{self.source}" '
                f'port port="{self.port}" protocol="{self.protocol}" accept'
            )
            return ["firewall-cmd", "--permanent", f"--add-rich-rule={rich_rule}"]
        return ["firewall-cmd", "--permanent", f"--add-port={self.port}/{self.protocol}"]


def build_firewall_rules(config: ProvisionerConfig) -> list[FirewallRule]:
    """The allow rules of a deployment.

    The database port is only opened to the external access address.
    """
    rules = [
        FirewallRule(port=StackPorts.SSH_PORT.value, comment="SSH"),
        FirewallRule(port=StackPorts.HTTP_PORT.value, comment="HTTP"),
        FirewallRule(port=StackPorts.HTTPS_PORT.value, comment="HTTPS"),
        FirewallRule(port=config.topology.app_port, comment="New-API"),
    ]
    if config.external_access_ip is not None:
        rules.append(
            FirewallRule(
                port=config.topology.database_port,
                comment="MySQL-External-Access",
                source=str(config.external_access_ip),
            )
        )
    return rules


class FirewallManager:
    """Applies the firewall rules through ufw or firewalld."""

    def __init__(self, workload: HostWorkload, config: ProvisionerConfig) -> None:
        self.workload = workload
        self.config = config

    @property
    def rules(self) -> list[FirewallRule]:
        """The rules of this deployment."""
        return build_firewall_rules(self.config)

    def detect_backend(self) -> FirewallBackend | None:
        """The first firewall front-end present on the host."""
        for backend in FirewallBackend:
            if self.workload.which(backend.value):
                return backend
        return None

    def configure(self) -> FirewallBackend | None:
        """Applies every rule. Returns the backend used, None when skipped."""
        if self.config.skip_firewall:
            logger.info("Skipping firewall configuration.")
            return None

        backend = self.detect_backend()
        match backend:
            case FirewallBackend.UFW:
                self._configure_ufw()
            case FirewallBackend.FIREWALLD:
                self._configure_firewalld()
            case _:
                logger.warning("No firewall front-end found, configure the firewall manually.")
                return None
        logger.info(f"Firewall configured with {backend.value}.")
        return backend

    def _configure_ufw(self) -> None:
        status = self.workload.exec(["ufw", "status"])
        if "Status: active" not in status:
            logger.warning("ufw is inactive, enabling it.")
            # SSH must be allowed before ufw starts filtering.
            self.workload.exec(self.rules[0].ufw_args())
            self.workload.exec(["ufw", "--force", "enable"])
        for rule in self.rules:
            self.workload.exec(rule.ufw_args())
        logger.debug(self.workload.exec(["ufw", "status", "numbered"]))

    def _configure_firewalld(self) -> None:
        self.workload.exec(["systemctl", "enable", "--now", "firewalld"])
        for rule in self.rules:
            self.workload.exec(rule.firewalld_args())
        self.workload.exec(["firewall-cmd", "--reload"])
