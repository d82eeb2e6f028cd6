#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""The TLS state of a deployment root."""

from pathlib import Path

from stack_provisioner.config.literals import CA_ROLE, LEAF_ROLES
from stack_provisioner.core.workload import DeploymentPaths


class TLSState:
    """What the certificate directories of a deployment currently hold."""

    def __init__(self, paths: DeploymentPaths):
        self.paths = paths

    @property
    def present_files(self) -> list[Path]:
        """TLS files already on disk."""
        return [path for path in self.paths.tls_files() if path.exists()]

    @property
    def ca_issued(self) -> bool:
        """Is the CA key pair on disk."""
        return self.paths.cert_file(CA_ROLE).is_file() and self.paths.key_file(CA_ROLE).is_file()

    def leaf_issued(self, role) -> bool:
        """Is the leaf of `role` on disk, along with its CA copy."""
        return all(
            path.is_file()
            for path in (
                self.paths.cert_file(role),
                self.paths.key_file(role),
                self.paths.ca_copy(role),
            )
        )

    @property
    def is_empty(self) -> bool:
        """Nothing was issued yet."""
        return not self.present_files

    @property
    def is_complete(self) -> bool:
        """The CA and every leaf are on disk."""
        return self.ca_issued and all(self.leaf_issued(role) for role in LEAF_ROLES)
