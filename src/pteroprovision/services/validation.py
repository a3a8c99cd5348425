"""Host validation helpers for pteroprovision."""

import os
import re
import shlex
from typing import Callable, Dict

from pteroprovision.constants import OS_RELEASE_PATH, SUPPORTED_DISTRIBUTION, SUPPORTED_VERSION
from pteroprovision.errors import PrivilegeError, RequestValidationError, UnsupportedHostError
from pteroprovision.errors_catalog import actionable_error
from pteroprovision.models import HostEnvironment


class ValidationService:
    """Confirms the host identity and privilege level before any mutation."""

    def __init__(
        self,
        os_release_path: str = OS_RELEASE_PATH,
        geteuid: Callable[[], int] = os.geteuid,
        distribution: str = SUPPORTED_DISTRIBUTION,
        version: str = SUPPORTED_VERSION,
    ):
        self.os_release_path = os_release_path
        self.geteuid = geteuid
        self.distribution = distribution
        self.version = version

    def read_os_release(self) -> Dict[str, str]:
        try:
            with open(self.os_release_path, "r", encoding="utf-8") as file_obj:
                content = file_obj.read()
        except OSError as exc:
            raise UnsupportedHostError(
                f"Could not read {self.os_release_path}: {exc}"
            ) from exc

        values: Dict[str, str] = {}
        for line in content.splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, raw_value = line.split("=", 1)
            try:
                parts = shlex.split(raw_value)
            except ValueError:
                parts = [raw_value.strip("\"'")]
            values[key.strip()] = parts[0] if parts else ""
        return values

    def detect_host(self) -> HostEnvironment:
        release = self.read_os_release()
        return HostEnvironment(
            distribution=release.get("ID", "").lower(),
            version=release.get("VERSION_ID", ""),
            euid=self.geteuid(),
        )

    def validate_host(self, logger, console) -> HostEnvironment:
        host = self.detect_host()
        logger.info("Detected host: %s %s (euid=%s)", host.distribution, host.version, host.euid)

        if host.euid != 0:
            raise PrivilegeError(actionable_error("missing_privilege", euid=host.euid))

        if host.distribution != self.distribution or host.version != self.version:
            detected = f"{host.distribution or 'unknown'} {host.version or 'unknown'}".strip()
            raise UnsupportedHostError(
                actionable_error(
                    "unsupported_host",
                    distribution=self.distribution.capitalize(),
                    version=self.version,
                    detected=detected,
                )
            )

        console.print(f"[green]Host check passed: {host.distribution} {host.version}.[/green]")
        return host

    @staticmethod
    def ensure_identifier(value: str, label: str) -> str:
        if not value or not re.fullmatch(r"[A-Za-z0-9_]+", value):
            raise RequestValidationError(
                f"{label} '{value}' is invalid. Use only letters, digits and underscores."
            )
        return value
