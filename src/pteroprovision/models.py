"""Shared domain models for pteroprovision."""

import ipaddress
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from pteroprovision.constants import (
    DB_NAME,
    DB_USER,
    DEFAULT_TRUSTED_PROXIES,
    SECRET_DEFAULT_LENGTH,
    SUMMARY_FILE,
)
from pteroprovision.errors import RequestValidationError

TRUE_VALUES = {"true", "yes", "y", "1", "on"}
FALSE_VALUES = {"false", "no", "n", "0", "off"}

_HOSTNAME_RE = re.compile(
    r"^(?=.{1,253}$)(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.(?!-)[A-Za-z0-9-]{1,63}(?<!-))*$"
)
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_USERNAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")
MIN_PASSWORD_LENGTH = 8


def parse_bool_flag(value: Any, field_name: str) -> bool:
    """Parses a boolean-like CLI value exactly once at the input boundary."""
    if isinstance(value, bool):
        return value
    if value is None:
        raise RequestValidationError(f"Missing required value for '{field_name}'.")

    normalized = str(value).strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise RequestValidationError(
        f"Invalid value '{value}' for '{field_name}'. Use true/false or yes/no."
    )


def parse_trusted_proxies(value: Union[str, Sequence[str]]) -> Tuple[str, ...]:
    """Normalizes one CIDR or a list of them into a tuple of network strings."""
    entries = [value] if isinstance(value, str) else list(value)
    networks = []
    for entry in entries:
        try:
            networks.append(str(ipaddress.ip_network(str(entry).strip(), strict=False)))
        except ValueError as exc:
            raise RequestValidationError(
                f"Invalid trusted proxy '{entry}'. Use an IP address or CIDR such as 10.0.0.0/8."
            ) from exc
    return tuple(networks)


class TlsPolicy(str, Enum):
    STRICT = "strict"
    BEST_EFFORT = "best-effort"


@dataclass(frozen=True)
class ReservationPolicy:
    """How much of the host's memory and disk is kept away from game servers."""

    mode: str = "percent"
    reserve_percent: int = 20
    reserve_memory_mib: int = 1024
    reserve_disk_mib: int = 10240

    MODES = ("percent", "fixed")

    def __post_init__(self):
        if self.mode not in self.MODES:
            raise RequestValidationError(
                f"Invalid reservation policy '{self.mode}'. Use one of: {', '.join(self.MODES)}."
            )
        if not 0 <= self.reserve_percent < 100:
            raise RequestValidationError("reserve_percent must be between 0 and 99.")
        if self.reserve_memory_mib < 0 or self.reserve_disk_mib < 0:
            raise RequestValidationError("Fixed reservations cannot be negative.")

    def allocate(self, total_mib: int, kind: str) -> int:
        if self.mode == "percent":
            return max(0, total_mib * (100 - self.reserve_percent) // 100)

        reserved = self.reserve_memory_mib if kind == "memory" else self.reserve_disk_mib
        return max(0, total_mib - reserved)


@dataclass(frozen=True)
class InstallRequest:
    """Validated installation parameters, immutable after construction."""

    domain: str
    ssl: bool
    email: str
    username: str
    first_name: str
    last_name: str
    password: str = field(repr=False)
    wings: bool
    node_domain: Optional[str] = None

    @classmethod
    def build(
        cls,
        domain: Optional[str],
        ssl: Any,
        email: Optional[str],
        username: Optional[str],
        first_name: Optional[str],
        last_name: Optional[str],
        password: Optional[str],
        wings: Any,
        node_domain: Optional[str] = None,
    ) -> "InstallRequest":
        values = {
            "domain": domain,
            "email": email,
            "username": username,
            "first_name": first_name,
            "last_name": last_name,
            "password": password,
        }
        missing = [name for name, value in values.items() if not str(value or "").strip()]
        if ssl is None or str(ssl).strip() == "":
            missing.append("ssl")
        if wings is None or str(wings).strip() == "":
            missing.append("wings")
        if missing:
            raise RequestValidationError(f"Missing required field(s): {', '.join(missing)}.")

        clean_domain = str(domain).strip().lower()
        if not _HOSTNAME_RE.match(clean_domain):
            raise RequestValidationError(f"Invalid domain name: {domain}")

        clean_email = str(email).strip()
        if not _EMAIL_RE.match(clean_email):
            raise RequestValidationError(f"Invalid administrator email: {email}")

        clean_username = str(username).strip()
        if not _USERNAME_RE.match(clean_username):
            raise RequestValidationError(
                "Administrator username may only contain letters, digits, '.', '_' and '-'."
            )

        if len(str(password)) < MIN_PASSWORD_LENGTH:
            raise RequestValidationError(
                f"Administrator password must be at least {MIN_PASSWORD_LENGTH} characters."
            )

        wings_enabled = parse_bool_flag(wings, "wings")
        clean_node_domain = None
        if wings_enabled:
            clean_node_domain = str(node_domain or clean_domain).strip().lower()
            if not _HOSTNAME_RE.match(clean_node_domain):
                raise RequestValidationError(f"Invalid node domain name: {node_domain}")

        return cls(
            domain=clean_domain,
            ssl=parse_bool_flag(ssl, "ssl"),
            email=clean_email,
            username=clean_username,
            first_name=str(first_name).strip(),
            last_name=str(last_name).strip(),
            password=str(password),
            wings=wings_enabled,
            node_domain=clean_node_domain,
        )

    @property
    def scheme(self) -> str:
        return "https" if self.ssl else "http"

    @property
    def panel_url(self) -> str:
        return f"{self.scheme}://{self.domain}"


@dataclass(frozen=True)
class ProvisionSettings:
    """Operator knobs that are not part of the install request."""

    tls_policy: TlsPolicy = TlsPolicy.BEST_EFFORT
    reservation_policy: ReservationPolicy = field(default_factory=ReservationPolicy)
    timezone: str = "UTC"
    panel_version: str = "latest"
    wings_version: str = "latest"
    summary_file: str = SUMMARY_FILE
    manifest_file: Optional[str] = None
    health_check_attempts: int = 15
    health_check_interval: float = 2.0
    node_port_check_attempts: int = 10
    node_port_check_interval: float = 1.0
    db_name: str = DB_NAME
    db_user: str = DB_USER
    secret_length: int = SECRET_DEFAULT_LENGTH
    rotate_db_root_password: bool = False
    download_timeout: float = 60.0
    trusted_proxies: Tuple[str, ...] = DEFAULT_TRUSTED_PROXIES
    dry_run: bool = False


@dataclass(frozen=True)
class HostEnvironment:
    distribution: str
    version: str
    euid: int


@dataclass(frozen=True)
class GeneratedSecrets:
    db_password: str = field(repr=False)
    db_root_password: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class StageResult:
    name: str
    status: str
    detail: Optional[str] = None


@dataclass(frozen=True)
class ServiceUnit:
    """A systemd unit rendered from the ``service.j2`` template."""

    name: str
    description: str
    exec_start: str
    user: str = "root"
    working_directory: Optional[str] = None
    after: str = "network.target"
    restart: str = "on-failure"
    restart_sec: str = "5s"
    start_limit_interval: Optional[int] = None
    start_limit_burst: Optional[int] = None
    extra: Dict[str, str] = field(default_factory=dict)

    @property
    def unit_name(self) -> str:
        return f"{self.name}.service"


@dataclass(frozen=True)
class ProxyConfig:
    """An nginx site bound to one domain."""

    name: str
    server_name: str
    template: str
    context: Dict[str, Any] = field(default_factory=dict)
