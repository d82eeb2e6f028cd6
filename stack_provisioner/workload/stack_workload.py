#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Application stack workload definition."""

from collections.abc import Mapping

from stack_provisioner.config.literals import Services
from stack_provisioner.core.workload import DeploymentPaths, WorkloadBase


class StackWorkload(WorkloadBase):
    """The application, cache and database containers."""

    services = [Services.APP.value, Services.CACHE.value, Services.DATABASE.value]

    def __init__(self, paths: DeploymentPaths) -> None:
        super().__init__(paths)

    def exec_in_service(
        self, service: str, command: list[str], env: Mapping[str, str] | None = None
    ) -> str:
        """Runs a command inside a service container.

        Only the names of `env` are passed on the docker command line, values
        travel through the process environment.
        """
        env_flags = [flag for key in (env or {}) for flag in ("-e", key)]
        return self.exec(["docker", "exec", *env_flags, service, *command], env=env)

    def database_tls_cipher(self, root_password: str) -> str:
        """The TLS cipher of a fresh root session on the database."""
        output = self.exec_in_service(
            Services.DATABASE.value,
            ["mysql", "-u", "root", "-N", "-e", "SHOW STATUS LIKE 'Ssl_cipher';"],
            env={"MYSQL_PWD": root_password},
        )
        for line in output.splitlines():
            name, _, value = line.partition("\t")
            if name == "Ssl_cipher":
                return value.strip()
        return ""
