import logging
import os

import click
from rich.logging import RichHandler

from .core import PanelProvisioner
from .errors import ProvisionError, RequestValidationError
from .models import (
    InstallRequest,
    ProvisionSettings,
    ReservationPolicy,
    TlsPolicy,
    parse_bool_flag,
    parse_trusted_proxies,
)
from .services.config_loader import ConfigLoader

DEFAULT_CONFIG_FILE = ".pteroprovision.yml"
POSITIONAL_FIELDS = (
    "domain",
    "ssl",
    "email",
    "admin",
    "first",
    "last",
    "password",
    "wings",
    "node_domain",
)


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


def _resolve_flag(cli_value, config, key, default=False) -> bool:
    value = _resolve_option(cli_value, config, key, default=default)
    try:
        return parse_bool_flag(value, key)
    except RequestValidationError as exc:
        raise click.UsageError(str(exc)) from exc


def _request_values(args, flag_values, config_values):
    """Returns the request fields from exactly one of the two accepted syntaxes."""
    flags_given = [name for name, value in flag_values.items() if value is not None]

    if args:
        if flags_given:
            raise click.UsageError(
                "Use either positional arguments or flags, not both "
                f"(got flags: {', '.join('--' + name.replace('_', '-') for name in flags_given)})."
            )
        if len(args) not in (len(POSITIONAL_FIELDS) - 1, len(POSITIONAL_FIELDS)):
            raise click.UsageError(
                "Expected 8 or 9 positional arguments: domain ssl email user first last pass wings "
                f"[nodeDomain], got {len(args)}."
            )
        values = dict(zip(POSITIONAL_FIELDS, args))
        values.setdefault("node_domain", None)
        return values

    return {
        name: _resolve_option(value, config_values, name) for name, value in flag_values.items()
    }


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.command()
@click.argument("args", nargs=-1)
@click.option("--domain", "--panel-domain", "domain", required=False, help="Panel domain name.")
@click.option("--ssl", "--use-ssl", "ssl", required=False, help="Request a TLS certificate (true/false).")
@click.option("--email", "--admin-email", "email", required=False, help="Administrator email address.")
@click.option("--admin", "--admin-user", "admin", required=False, help="Administrator username.")
@click.option("--first", "--first-name", "first", required=False, help="Administrator first name.")
@click.option("--last", "--last-name", "last", required=False, help="Administrator last name.")
@click.option("--pass", "--admin-pass", "password", required=False, help="Administrator password.")
@click.option("--wings", "--deploy-wings", "wings", required=False, help="Install the Wings node agent (true/false).")
@click.option("--node-domain", required=False, help="Wings node domain (defaults to the panel domain).")
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_FILE} if present.",
)
@click.option(
    "--tls-policy",
    required=False,
    type=click.Choice([policy.value for policy in TlsPolicy]),
    help="What to do when a certificate cannot be obtained (default: best-effort).",
)
@click.option(
    "--reservation-policy",
    required=False,
    type=click.Choice(ReservationPolicy.MODES),
    help="How host memory and disk are reserved from the Wings node (default: percent).",
)
@click.option("--reserve-percent", required=False, type=int, help="Percent of host capacity kept back (default: 20).")
@click.option("--reserve-memory-mib", required=False, type=int, help="Memory kept back in fixed mode (MiB).")
@click.option("--reserve-disk-mib", required=False, type=int, help="Disk kept back in fixed mode (MiB).")
@click.option("--timezone", required=False, help="Panel timezone (default: UTC).")
@click.option("--panel-version", required=False, help="Panel release tag or 'latest'.")
@click.option("--wings-version", required=False, help="Wings release tag or 'latest'.")
@click.option("--summary-file", required=False, type=click.Path(), help="Where to write installation details.")
@click.option("--manifest-file", required=False, type=click.Path(), help="Optional JSON run manifest path.")
@click.option("--health-check-attempts", required=False, type=int, help="Panel health check attempts (default: 15).")
@click.option(
    "--health-check-interval",
    required=False,
    type=float,
    help="Seconds between panel health check attempts (default: 2).",
)
@click.option("--node-port-check-attempts", required=False, type=int, help="Wings port check attempts (default: 10).")
@click.option(
    "--node-port-check-interval",
    required=False,
    type=float,
    help="Seconds between Wings port check attempts (default: 1).",
)
@click.option("--db-name", required=False, help="Panel database name (default: panel).")
@click.option("--db-user", required=False, help="Panel database user (default: pterodactyl).")
@click.option("--secret-length", required=False, type=int, help="Generated password length, 16-24 (default: 20).")
@click.option(
    "--rotate-db-root-password",
    is_flag=True,
    default=None,
    help="Also set a generated MariaDB root password (socket login keeps working).",
)
@click.option("--download-timeout", required=False, type=float, help="HTTP download timeout in seconds.")
@click.option(
    "--trusted-proxy",
    "trusted_proxies",
    multiple=True,
    help="CIDR trusted by Wings for forwarded headers. Repeat for several.",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.option(
    "--dry-run",
    is_flag=True,
    default=None,
    help="Validate inputs and print the installation plan without changing the host.",
)
def main(
    args,
    domain,
    ssl,
    email,
    admin,
    first,
    last,
    password,
    wings,
    node_domain,
    config,
    tls_policy,
    reservation_policy,
    reserve_percent,
    reserve_memory_mib,
    reserve_disk_mib,
    timezone,
    panel_version,
    wings_version,
    summary_file,
    manifest_file,
    health_check_attempts,
    health_check_interval,
    node_port_check_attempts,
    node_port_check_interval,
    db_name,
    db_user,
    secret_length,
    rotate_db_root_password,
    download_timeout,
    trusted_proxies,
    verbose,
    log_file,
    dry_run,
):
    """Install the Pterodactyl panel and, optionally, a Wings node on Ubuntu 22.04.

    \b
    Positional form:
      pteroprovision DOMAIN SSL EMAIL USER FIRST LAST PASS WINGS [NODE_DOMAIN]
    """
    logger = logging.getLogger("pteroprovision")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
    except ProvisionError as exc:
        raise click.ClickException(str(exc)) from exc

    request_values = _request_values(
        args,
        {
            "domain": domain,
            "ssl": ssl,
            "email": email,
            "admin": admin,
            "first": first,
            "last": last,
            "password": password,
            "wings": wings,
            "node_domain": node_domain,
        },
        config_values,
    )

    verbose = _resolve_flag(verbose, config_values, "verbose")
    log_file = _resolve_option(log_file, config_values, "log_file")
    dry_run = _resolve_flag(dry_run, config_values, "dry_run")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    try:
        request = InstallRequest.build(
            domain=request_values["domain"],
            ssl=request_values["ssl"],
            email=request_values["email"],
            username=request_values["admin"],
            first_name=request_values["first"],
            last_name=request_values["last"],
            password=request_values["password"],
            wings=request_values["wings"],
            node_domain=request_values["node_domain"],
        )

        defaults = ProvisionSettings()
        default_reservation = defaults.reservation_policy
        tls_value = str(_resolve_option(tls_policy, config_values, "tls_policy", default=defaults.tls_policy.value))
        try:
            resolved_tls_policy = TlsPolicy(tls_value)
        except ValueError as exc:
            raise RequestValidationError(
                f"Invalid TLS policy '{tls_value}'. Use one of: "
                + ", ".join(policy.value for policy in TlsPolicy)
                + "."
            ) from exc

        settings = ProvisionSettings(
            tls_policy=resolved_tls_policy,
            reservation_policy=ReservationPolicy(
                mode=str(
                    _resolve_option(
                        reservation_policy, config_values, "reservation_policy", default=default_reservation.mode
                    )
                ),
                reserve_percent=int(
                    _resolve_option(
                        reserve_percent, config_values, "reserve_percent", default=default_reservation.reserve_percent
                    )
                ),
                reserve_memory_mib=int(
                    _resolve_option(
                        reserve_memory_mib,
                        config_values,
                        "reserve_memory_mib",
                        default=default_reservation.reserve_memory_mib,
                    )
                ),
                reserve_disk_mib=int(
                    _resolve_option(
                        reserve_disk_mib,
                        config_values,
                        "reserve_disk_mib",
                        default=default_reservation.reserve_disk_mib,
                    )
                ),
            ),
            timezone=str(_resolve_option(timezone, config_values, "timezone", default=defaults.timezone)),
            panel_version=str(
                _resolve_option(panel_version, config_values, "panel_version", default=defaults.panel_version)
            ),
            wings_version=str(
                _resolve_option(wings_version, config_values, "wings_version", default=defaults.wings_version)
            ),
            summary_file=str(
                _resolve_option(summary_file, config_values, "summary_file", default=defaults.summary_file)
            ),
            manifest_file=_resolve_option(manifest_file, config_values, "manifest_file"),
            health_check_attempts=int(
                _resolve_option(
                    health_check_attempts,
                    config_values,
                    "health_check_attempts",
                    default=defaults.health_check_attempts,
                )
            ),
            health_check_interval=float(
                _resolve_option(
                    health_check_interval,
                    config_values,
                    "health_check_interval",
                    default=defaults.health_check_interval,
                )
            ),
            node_port_check_attempts=int(
                _resolve_option(
                    node_port_check_attempts,
                    config_values,
                    "node_port_check_attempts",
                    default=defaults.node_port_check_attempts,
                )
            ),
            node_port_check_interval=float(
                _resolve_option(
                    node_port_check_interval,
                    config_values,
                    "node_port_check_interval",
                    default=defaults.node_port_check_interval,
                )
            ),
            db_name=str(_resolve_option(db_name, config_values, "db_name", default=defaults.db_name)),
            db_user=str(_resolve_option(db_user, config_values, "db_user", default=defaults.db_user)),
            secret_length=int(
                _resolve_option(secret_length, config_values, "secret_length", default=defaults.secret_length)
            ),
            rotate_db_root_password=_resolve_flag(
                rotate_db_root_password, config_values, "rotate_db_root_password"
            ),
            download_timeout=float(
                _resolve_option(download_timeout, config_values, "download_timeout", default=defaults.download_timeout)
            ),
            trusted_proxies=parse_trusted_proxies(
                _resolve_option(
                    trusted_proxies or None, config_values, "trusted_proxies", default=defaults.trusted_proxies
                )
            ),
            dry_run=dry_run,
        )

        provisioner = PanelProvisioner(request=request, settings=settings)
    except RequestValidationError as exc:
        raise click.UsageError(str(exc)) from exc
    except ProvisionError as exc:
        raise click.ClickException(str(exc)) from exc
    except (TypeError, ValueError) as exc:
        raise click.UsageError(f"Invalid configuration value: {exc}") from exc

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    raise SystemExit(provisioner.run())


if __name__ == "__main__":
    main()
