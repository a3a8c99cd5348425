"""Domain errors for pteroprovision."""

from typing import Optional

from pteroprovision.constants import (
    EXIT_STAGE_FAILURE,
    EXIT_UNSUPPORTED_HOST,
    EXIT_USAGE,
)


class ProvisionError(RuntimeError):
    """Raised when the installation cannot continue safely."""

    exit_code = EXIT_STAGE_FAILURE


class RequestValidationError(ProvisionError):
    """Raised when user supplied parameters are missing or malformed."""

    exit_code = EXIT_USAGE


class PrivilegeError(ProvisionError):
    """Raised when the installer does not run with administrative privilege."""


class UnsupportedHostError(ProvisionError):
    """Raised when the host OS is not the supported distribution/version."""

    exit_code = EXIT_UNSUPPORTED_HOST


class StageFailedError(ProvisionError):
    """Raised by the orchestrator when a fatal stage fails."""

    def __init__(self, stage: str, message: str, exit_code: Optional[int] = None):
        super().__init__(f"Stage '{stage}' failed: {message}")
        self.stage = stage
        if exit_code is not None:
            self.exit_code = exit_code
