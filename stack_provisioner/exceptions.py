#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""All general exceptions."""


class FatalPreconditionError(Exception):
    """Raised when the host cannot be provisioned at all."""


class PrivilegeError(FatalPreconditionError):
    """Raised when the provisioner does not run with root privileges."""


class UnsupportedPlatformError(FatalPreconditionError):
    """Raised when the operating system is not a known platform family."""


class MissingToolError(FatalPreconditionError):
    """Raised when a required tool is absent and cannot be installed."""

    def __init__(self, tool: str, reason: str = ""):
        super().__init__(tool, reason)
        self.tool = tool
        self.reason = reason

    def __str__(self) -> str:
        """Repr of error."""
        if self.reason:
            return f"required tool {self.tool} is missing: {self.reason}"
        return f"required tool {self.tool} is missing"


class DeploymentLockedError(FatalPreconditionError):
    """Raised when another provisioning run or maintenance job holds the lock."""


class IncompleteCertificateSetError(FatalPreconditionError):
    """Raised when the deployment root holds a partial certificate set."""


class ToolInvocationError(Exception):
    """Raised when an external command returns a non-zero exit code."""

    def __init__(
        self,
        cmd: str | list[str],
        return_code: int,
        stdout: str | None,
        stderr: str | None,
    ):
        super().__init__(self)
        self.cmd = cmd
        self.return_code = return_code
        self.stdout = stdout or ""
        self.stderr = stderr or ""

    def __str__(self) -> str:
        """Repr of error."""
        return f"cmd failed ({self.return_code}) - cmd={self.cmd}, stdout={self.stdout}, stderr={self.stderr}"


class SecretGenerationError(Exception):
    """Raised when the entropy source is unavailable."""


class InvalidCredentialsError(Exception):
    """Raised when a persisted credential set does not satisfy the secret policy."""


class TemplateRenderError(Exception):
    """Raised when a value cannot be embedded safely in a rendered artifact."""


class CertificateAuthorityMissingError(Exception):
    """Raised when a leaf certificate is requested before the CA exists."""


class CertificateChainError(Exception):
    """Raised when a leaf certificate is not signed by the deployment CA."""


class ActivationError(Exception):
    """Raised when the container set fails activation or verification."""


class ContainersNotRunningError(ActivationError):
    """Raised when the runtime reports no service running after activation."""


class ReadinessTimeoutError(ActivationError):
    """Raised when the health probe never succeeds within the retry budget."""

    def __init__(self, attempts: int, delay: float):
        super().__init__(attempts, delay)
        self.attempts = attempts
        self.delay = delay

    def __str__(self) -> str:
        """Repr of error."""
        return f"health probe did not succeed after {self.attempts} attempts ({self.delay}s apart)"
