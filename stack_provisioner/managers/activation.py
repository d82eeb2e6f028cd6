#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Manager for bringing the container set up and checking it serves requests."""

from __future__ import annotations

import logging

import httpx
from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_fixed

from stack_provisioner.config.literals import HEALTH_STATUS_PATH, LOCALHOST
from stack_provisioner.core.structured_config import ProvisionerConfig
from stack_provisioner.exceptions import (
    ContainersNotRunningError,
    ReadinessTimeoutError,
    ToolInvocationError,
)
from stack_provisioner.state.credentials import CredentialSet
from stack_provisioner.status import ActivationStatus, classify
from stack_provisioner.workload import HostStackWorkload

logger = logging.getLogger(__name__)


class ActivationManager:
    """Starts the compose project and gates on its readiness."""

    def __init__(self, workload: HostStackWorkload, config: ProvisionerConfig) -> None:
        self.workload = workload
        self.config = config
        self.policy = config.readiness
        self.running: set[str] = set()

    @property
    def declared_services(self) -> set[str]:
        """Services of the compose manifest."""
        return set(self.workload.services)

    @property
    def health_url(self) -> str:
        """The application status endpoint."""
        return f"http://{LOCALHOST}:{self.config.topology.app_port}{HEALTH_STATUS_PATH}"

    def activate(self) -> None:
        """Pulls the images and starts the stack in the background."""
        logger.info("Pulling the images.")
        self.workload.pull()
        logger.info("Starting the services.")
        self.workload.start()

    def running_services(self) -> set[str]:
        """Services currently running, empty when the runtime cannot be queried."""
        try:
            return self.workload.running_services()
        except ToolInvocationError:
            return set()

    def wait_for_services(self) -> set[str]:
        """Polls the runtime until every declared service runs or the budget is spent.

        Returns:
            The last observed set of running services.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.policy.attempts),
            wait=wait_fixed(self.policy.delay),
            retry=retry_if_result(lambda running: not self.declared_services <= running),
            retry_error_callback=lambda state: state.outcome.result(),
        )
        return retrying(self.running_services)

    def probe_health(self) -> bool:
        """A single health probe: the body must be a JSON object with `success` true."""
        try:
            response = httpx.get(self.health_url, timeout=self.policy.probe_timeout)
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("Health probe failed: %s", e)
            return False
        return isinstance(body, dict) and body.get("success") is True

    def wait_until_healthy(self) -> bool:
        """Probes until healthy, at most `attempts` times, `delay` seconds apart."""
        retrying = Retrying(
            stop=stop_after_attempt(self.policy.attempts),
            wait=wait_fixed(self.policy.delay),
            retry=retry_if_result(lambda result: result is False),
            retry_error_callback=lambda _: False,
        )
        return retrying(self.probe_health)

    def verify(self) -> ActivationStatus:
        """Classifies the stack after activation.

        Raises:
            ContainersNotRunningError if no service runs.
            ReadinessTimeoutError if the health probe never succeeded.
        """
        self.running = self.wait_for_services()
        logger.info(f"Running services: {', '.join(sorted(self.running)) or 'none'}")
        probe_ok = bool(self.running) and self.wait_until_healthy()
        status = classify(self.declared_services, self.running, probe_ok)

        if status is ActivationStatus.FAILED:
            self.dump_logs()
            if not self.running:
                raise ContainersNotRunningError("no service is running after activation")
            raise ReadinessTimeoutError(self.policy.attempts, self.policy.delay)
        return status

    def dump_logs(self) -> None:
        """Logs the tail of the runtime's logs. Containers are left running."""
        try:
            logs = self.workload.logs(self.policy.log_tail)
        except ToolInvocationError as e:
            logger.error(f"Cannot read the service logs: {e}")
            return
        logger.error(f"{' Service logs ':=^40}")
        for line in logs.splitlines():
            logger.error(line)
        logger.error(f"{' End of service logs ':=^40}")

    def check_database_tls(self, credentials: CredentialSet) -> bool:
        """Checks a root session on the database negotiates TLS.

        An inconclusive check only logs a warning.
        """
        try:
            cipher = self.workload.database_tls_cipher(credentials.mysql_root_password)
        except ToolInvocationError:
            logger.warning("Cannot check the database TLS status, the database may still be starting.")
            return False
        if not cipher:
            logger.warning("The database session did not negotiate TLS.")
            return False
        logger.info(f"Database TLS active ({cipher}).")
        return True
