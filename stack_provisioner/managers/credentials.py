#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Managers for the deployment tree and its credential set."""

from __future__ import annotations

import logging

from dotenv import dotenv_values

from stack_provisioner.core.host_workload import HostWorkload
from stack_provisioner.core.structured_config import ProvisionerConfig
from stack_provisioner.exceptions import InvalidCredentialsError
from stack_provisioner.managers.config import TemplateRenderer, render_env_file
from stack_provisioner.state.credentials import CredentialSet

logger = logging.getLogger(__name__)


class DirectoryManager:
    """Creates the deployment tree."""

    def __init__(self, workload: HostWorkload) -> None:
        self.workload = workload

    def create(self) -> None:
        """Creates every directory of the deployment root."""
        for directory in self.workload.paths.directories:
            self.workload.mkdir(directory)
        logger.info(f"Deployment tree ready in {self.workload.paths.root}.")


class CredentialManager:
    """Generates the credential set once and reuses it on every re-run."""

    def __init__(
        self,
        workload: HostWorkload,
        config: ProvisionerConfig,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.workload = workload
        self.config = config
        self.renderer = renderer or TemplateRenderer()

    @property
    def exists(self) -> bool:
        """Is there a persisted credential set."""
        return self.workload.paths.env_file.is_file()

    def load(self) -> CredentialSet:
        """Loads the persisted credential set.

        Raises:
            InvalidCredentialsError
        """
        return CredentialSet.from_env(dotenv_values(self.workload.paths.env_file))

    def load_or_generate(self) -> CredentialSet:
        """Reuses the persisted credential set, generating one if absent.

        Reusing keeps the running stack's credentials in place, the database
        only applies its init script on an empty data volume.

        Raises:
            InvalidCredentialsError
        """
        if self.exists:
            credentials = self.load()
            if credentials.mysql_user != self.config.mysql_user:
                raise InvalidCredentialsError(
                    f"{self.workload.paths.env_file} holds the application user "
                    f"{credentials.mysql_user!r} but the configuration asks for "
                    f"{self.config.mysql_user!r}, the database keeps the user it was initialised with"
                )
            logger.info("Reusing the credentials in %s", self.workload.paths.env_file)
        else:
            if self.workload.paths.compose_file.is_file():
                logger.warning(
                    f"{self.workload.paths.env_file} is missing but a stack was deployed in "
                    f"{self.workload.paths.root}, an existing database volume keeps its old passwords."
                )
            credentials = CredentialSet.generate(mysql_user=self.config.mysql_user)
            logger.info("Generated a new credential set.")
        self.persist(credentials)
        return credentials

    def persist(self, credentials: CredentialSet) -> None:
        """Writes the environment file, readable by root only."""
        artifact = render_env_file(self.renderer, self.config, credentials, self.workload.paths.env_file)
        self.workload.write(artifact.content, artifact.path, artifact.permissions)
