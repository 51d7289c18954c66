"""Provisioning-level domain errors."""

from __future__ import annotations


class ProvisioningError(Exception):
    """Base exception type for deterministic provisioning failure handling."""

    error_code = "provisioning_error"

    def __init__(self, message: str, *, remediation: str = "") -> None:
        super().__init__(message)
        self.remediation = remediation


class PrivilegeError(ProvisioningError):
    error_code = "privilege_error"


class CommandError(ProvisioningError):
    """Raised when an external command exits non-zero or cannot be spawned."""

    error_code = "command_error"

    def __init__(
        self,
        *,
        stage: str,
        command: str,
        returncode: int | None,
        detail: str,
        remediation: str = "",
    ) -> None:
        self.stage = stage
        self.command = command
        self.returncode = returncode
        self.detail = detail
        super().__init__(
            f"stage={stage} returncode={returncode} command={command!r} detail={detail}",
            remediation=remediation,
        )


class DeploymentRecordError(ProvisioningError):
    error_code = "deployment_record_error"


class AppConfigError(ProvisioningError):
    error_code = "app_config_error"


class NginxSiteError(ProvisioningError):
    """Raised when the site descriptor cannot be activated."""

    error_code = "nginx_site_error"

    def __init__(
        self,
        message: str,
        *,
        remediation: str = "",
        rollback_attempted: bool = False,
        rollback_succeeded: bool | None = None,
    ) -> None:
        super().__init__(message, remediation=remediation)
        self.rollback_attempted = rollback_attempted
        self.rollback_succeeded = rollback_succeeded
