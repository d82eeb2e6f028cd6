#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Command line entry point of the provisioner."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import typer
from pydantic import ValidationError

from stack_provisioner.core.structured_config import ProvisionerConfig
from stack_provisioner.exceptions import (
    ActivationError,
    CertificateAuthorityMissingError,
    CertificateChainError,
    FatalPreconditionError,
    InvalidCredentialsError,
    SecretGenerationError,
    TemplateRenderError,
    ToolInvocationError,
)
from stack_provisioner.managers.provisioner import Provisioner
from stack_provisioner.status import ActivationStatus

logger = logging.getLogger(__name__)

app = typer.Typer(help="Provision the new-api application, database and cache stack on this host.")

PROVISIONING_ERRORS = (
    FatalPreconditionError,
    ToolInvocationError,
    SecretGenerationError,
    InvalidCredentialsError,
    TemplateRenderError,
    CertificateAuthorityMissingError,
    CertificateChainError,
    ActivationError,
)

EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130

T = TypeVar("T")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_config(config_file: Path | None, **overrides) -> ProvisionerConfig:
    try:
        config = ProvisionerConfig.from_file(config_file) if config_file else ProvisionerConfig()
        return config.with_overrides(**overrides)
    except (OSError, ValueError, ValidationError) as e:
        logger.error(f"Invalid configuration: {e}")
        raise typer.Exit(code=EXIT_USAGE)


def _guarded(action: Callable[[], T]) -> T:
    """Runs an action, mapping failures and interrupts to exit codes."""
    try:
        return action()
    except KeyboardInterrupt:
        logger.error("Interrupted, the deployment root is left as is.")
        raise typer.Exit(code=EXIT_INTERRUPTED)
    except PROVISIONING_ERRORS as e:
        logger.error(f"{type(e).__name__}: {e}")
        raise typer.Exit(code=EXIT_FAILED)


def _exit_code(status: ActivationStatus) -> int:
    return 0 if status.is_running else EXIT_FAILED


@app.command()
def deploy(
    root: Path | None = typer.Option(None, "--root", help="Deployment root directory."),
    config_file: Path | None = typer.Option(None, "--config", help="YAML configuration file."),
    skip_docker_install: bool = typer.Option(
        False, "--skip-docker-install", help="Never install docker, fail if it is missing."
    ),
    skip_firewall: bool = typer.Option(False, "--skip-firewall", help="Do not apply firewall rules."),
    external_access_ip: str | None = typer.Option(
        None, "--external-access-ip", help="Single address allowed to reach the database."
    ),
    readiness_attempts: int | None = typer.Option(
        None, "--readiness-attempts", min=1, help="Health probe attempts."
    ),
    readiness_delay: float | None = typer.Option(
        None, "--readiness-delay", min=0, help="Seconds between health probes."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Provisions the stack, or re-provisions an existing deployment root."""
    _setup_logging(verbose)
    config = _load_config(
        config_file,
        root=root,
        skip_docker_install=skip_docker_install or None,
        skip_firewall=skip_firewall or None,
        external_access_ip=external_access_ip,
    )
    if readiness_attempts is not None or readiness_delay is not None:
        readiness = config.readiness.model_copy(
            update={
                key: value
                for key, value in (("attempts", readiness_attempts), ("delay", readiness_delay))
                if value is not None
            }
        )
        config = config.model_copy(update={"readiness": readiness})

    report = _guarded(Provisioner(config).run)
    raise typer.Exit(code=_exit_code(report.status))


@app.command()
def verify(
    root: Path | None = typer.Option(None, "--root", help="Deployment root directory."),
    config_file: Path | None = typer.Option(None, "--config", help="YAML configuration file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Checks an existing deployment without changing it."""
    _setup_logging(verbose)
    config = _load_config(config_file, root=root)
    report = _guarded(Provisioner(config).verify)
    raise typer.Exit(code=_exit_code(report.status))


@app.command()
def backup(
    root: Path | None = typer.Option(None, "--root", help="Deployment root directory."),
    config_file: Path | None = typer.Option(None, "--config", help="YAML configuration file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Runs the backup job now."""
    _setup_logging(verbose)
    config = _load_config(config_file, root=root)
    output = _guarded(Provisioner(config).backup)
    for line in output.splitlines():
        logger.info(line)


if __name__ == "__main__":
    app()
