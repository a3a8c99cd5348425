"""Configuration loader for pteroprovision."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from pteroprovision.errors import ProvisionError


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "domain",
        "ssl",
        "email",
        "admin",
        "first",
        "last",
        "password",
        "wings",
        "node_domain",
        "verbose",
        "log_file",
        "tls_policy",
        "reservation_policy",
        "reserve_percent",
        "reserve_memory_mib",
        "reserve_disk_mib",
        "timezone",
        "panel_version",
        "wings_version",
        "summary_file",
        "manifest_file",
        "health_check_attempts",
        "health_check_interval",
        "node_port_check_attempts",
        "node_port_check_interval",
        "db_name",
        "db_user",
        "secret_length",
        "rotate_db_root_password",
        "download_timeout",
        "trusted_proxies",
        "dry_run",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise ProvisionError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise ProvisionError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise ProvisionError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise ProvisionError(f"Unknown configuration keys: {unknown_list}")

        return parsed
