"""Wings node agent installation for pteroprovision."""

import json
import os
import platform
import socket
import time
from typing import Any, Callable, Dict, Optional

import psutil
import yaml

from pteroprovision.constants import (
    NODE_PACKAGES,
    PHP_BINARY,
    PRIVATE_FILE_MODE,
    SCRIPT_MODE,
    WINGS_API_PORT,
    WINGS_ARCHITECTURES,
    WINGS_BINARY,
    WINGS_BIND_HOST,
    WINGS_CONFIG_DIR,
    WINGS_CONFIG_FILE,
    WINGS_DOCKER_NETWORK,
    WINGS_INTERNAL_PORT,
    WINGS_LOCATION_LONG,
    WINGS_LOCATION_SHORT,
    WINGS_LOG_DIR,
    WINGS_RELEASE_URL,
    WINGS_ROOT_DIR,
    WINGS_SFTP_PORT,
    WINGS_TMP_DIR,
)
from pteroprovision.errors import ProvisionError
from pteroprovision.errors_catalog import actionable_error
from pteroprovision.models import ProxyConfig, ServiceUnit, StageResult
from pteroprovision.services.packages import APT_ENV, APT_LOCK_RETRY
from pteroprovision.services.panel import release_url

MIB = 1024 * 1024


def wings_unit() -> ServiceUnit:
    return ServiceUnit(
        name="wings",
        description="Pterodactyl Wings Daemon",
        exec_start=WINGS_BINARY,
        user="root",
        working_directory=WINGS_CONFIG_DIR,
        after="docker.service",
        restart="on-failure",
        restart_sec="5s",
        start_limit_interval=180,
        start_limit_burst=30,
        extra={"LimitNOFILE": "4096", "PIDFile": "/var/run/wings/daemon.pid"},
    )


class NodeAgentService:
    """Installs Docker and Wings, registers the node and writes its config."""

    def __init__(
        self,
        logger,
        console,
        download_service,
        filesystem_service,
        proxy_service,
        supervisor_service,
        database_service,
        panel_dir: str,
        service_user: str,
        binary_path: str = WINGS_BINARY,
        config_file: str = WINGS_CONFIG_FILE,
        machine: Callable[[], str] = platform.machine,
        psutil_module=psutil,
        sleep: Callable[[float], None] = time.sleep,
        connect: Callable[..., Any] = socket.create_connection,
    ):
        self.logger = logger
        self.console = console
        self.download_service = download_service
        self.filesystem_service = filesystem_service
        self.proxy_service = proxy_service
        self.supervisor_service = supervisor_service
        self.database_service = database_service
        self.panel_dir = panel_dir
        self.service_user = service_user
        self.binary_path = binary_path
        self.config_file = config_file
        self.machine = machine
        self.psutil = psutil_module
        self.sleep = sleep
        self.connect = connect

    # -- host facts ------------------------------------------------------

    def architecture(self) -> str:
        machine = self.machine().lower()
        if machine not in WINGS_ARCHITECTURES:
            raise ProvisionError(f"Wings has no release for CPU architecture '{machine}'.")
        return WINGS_ARCHITECTURES[machine]

    def host_capacity(self) -> Dict[str, int]:
        disk_path = WINGS_ROOT_DIR if os.path.isdir(WINGS_ROOT_DIR) else "/"
        return {
            "memory": int(self.psutil.virtual_memory().total // MIB),
            "disk": int(self.psutil.disk_usage(disk_path).total // MIB),
        }

    def allocation(self, reservation_policy) -> Dict[str, int]:
        capacity = self.host_capacity()
        allocation = {
            kind: reservation_policy.allocate(total, kind) for kind, total in capacity.items()
        }
        self.logger.info(
            "Host capacity %s MiB memory / %s MiB disk; allocating %s / %s MiB to the node.",
            capacity["memory"],
            capacity["disk"],
            allocation["memory"],
            allocation["disk"],
        )
        return allocation

    # -- installation ----------------------------------------------------

    def install_runtime(self, run_cmd):
        self.console.print("[blue]Installing Docker...[/blue]")
        run_cmd(["apt-get", "install", "-y", "-q", *NODE_PACKAGES], env=APT_ENV, **APT_LOCK_RETRY)
        run_cmd(["systemctl", "enable", "--now", "docker"])

    def install_binary(self, version: str):
        arch = self.architecture()
        url = release_url(WINGS_RELEASE_URL, version, arch=arch)
        partial = f"{self.binary_path}.download"
        self.download_service.download_file(url, partial, f"Downloading wings ({arch})")
        os.chmod(partial, SCRIPT_MODE)
        os.replace(partial, self.binary_path)
        self.logger.info("Installed wings binary at %s", self.binary_path)

    # -- panel registration --------------------------------------------

    def _artisan(self, args, run_cmd, capture_output: bool = False):
        return run_cmd(
            [PHP_BINARY, "artisan", *args],
            cwd=self.panel_dir,
            user=self.service_user,
            capture_output=capture_output,
        )

    def ensure_location(self, run_cmd) -> int:
        location_id = self.database_service.location_id(WINGS_LOCATION_SHORT, run_cmd)
        if location_id is None:
            self._artisan(
                [
                    "p:location:make",
                    f"--short={WINGS_LOCATION_SHORT}",
                    f"--long={WINGS_LOCATION_LONG}",
                    "--no-interaction",
                ],
                run_cmd,
            )
            location_id = self.database_service.location_id(WINGS_LOCATION_SHORT, run_cmd)
        if location_id is None:
            raise ProvisionError(f"Location '{WINGS_LOCATION_SHORT}' was not created.")
        return location_id

    def ensure_node(self, node_domain: str, scheme: str, allocation: Dict[str, int], run_cmd) -> int:
        node_id = self.database_service.node_id(node_domain, run_cmd)
        if node_id is not None:
            self.logger.info("Node for %s already registered with id %s.", node_domain, node_id)
            return node_id

        location_id = self.ensure_location(run_cmd)
        self._artisan(
            [
                "p:node:make",
                f"--name={node_domain}",
                "--description=Provisioned by pteroprovision",
                f"--locationId={location_id}",
                f"--fqdn={node_domain}",
                "--public=1",
                f"--scheme={scheme}",
                "--proxy=0",
                "--maintenance=0",
                f"--maxMemory={allocation['memory']}",
                "--overallocateMemory=0",
                f"--maxDisk={allocation['disk']}",
                "--overallocateDisk=0",
                "--uploadSize=100",
                f"--daemonListeningPort={WINGS_API_PORT}",
                f"--daemonSFTPPort={WINGS_SFTP_PORT}",
                f"--daemonBase={WINGS_ROOT_DIR}/volumes",
                "--no-interaction",
            ],
            run_cmd,
        )
        node_id = self.database_service.node_id(node_domain, run_cmd)
        if node_id is None:
            raise ProvisionError(f"Node '{node_domain}' was not found after registration.")
        return node_id

    def fetch_node_configuration(self, node_id: int, run_cmd) -> Dict[str, Any]:
        result = self._artisan(
            ["p:node:configuration", str(node_id), "--format=json"], run_cmd, capture_output=True
        )
        output = result.stdout or ""
        start = output.find("{")
        try:
            data = json.loads(output[start:]) if start >= 0 else None
        except json.JSONDecodeError as exc:
            raise ProvisionError(f"Could not parse node configuration for node {node_id}: {exc}") from exc
        if not isinstance(data, dict) or not data.get("token"):
            raise ProvisionError(f"Panel returned no credentials for node {node_id}.")
        return data

    # -- configuration -------------------------------------------------

    def build_config(
        self,
        panel_config: Dict[str, Any],
        panel_url: str,
        certificate_paths: Dict[str, str],
        trusted_proxies,
    ) -> Dict[str, Any]:
        api = dict(panel_config.get("api") or {})
        api.update(
            {
                "host": WINGS_BIND_HOST,
                "port": WINGS_INTERNAL_PORT,
                # TLS terminates at the nginx vhost in front of wings
                "ssl": {
                    "enabled": False,
                    "cert": certificate_paths["certificate_path"],
                    "key": certificate_paths["certificate_key_path"],
                },
                "upload_limit": api.get("upload_limit", 100),
                "trusted_proxies": list(trusted_proxies),
            }
        )

        system = dict(panel_config.get("system") or {})
        system.update(
            {
                "root_directory": WINGS_ROOT_DIR,
                "log_directory": WINGS_LOG_DIR,
                "data": f"{WINGS_ROOT_DIR}/volumes",
                "archive_directory": f"{WINGS_ROOT_DIR}/archives",
                "backup_directory": f"{WINGS_ROOT_DIR}/backups",
                "tmp_directory": WINGS_TMP_DIR,
                "username": "pterodactyl",
                "sftp": {"bind_port": WINGS_SFTP_PORT},
            }
        )

        docker = dict(panel_config.get("docker") or {})
        network = dict(docker.get("network") or {})
        network.update(
            {
                "interface": WINGS_DOCKER_NETWORK["interface"],
                "name": WINGS_DOCKER_NETWORK["name"],
                "interfaces": {
                    "v4": {
                        "subnet": WINGS_DOCKER_NETWORK["subnet"],
                        "gateway": WINGS_DOCKER_NETWORK["gateway"],
                    }
                },
            }
        )
        docker["network"] = network

        config = dict(panel_config)
        config.update(
            {
                "debug": False,
                "api": api,
                "system": system,
                "docker": docker,
                "remote": panel_url,
                "allowed_origins": [panel_url],
            }
        )
        return config

    def write_config(self, config: Dict[str, Any]):
        content = yaml.safe_dump(config, sort_keys=False, default_flow_style=False)
        self.filesystem_service.write_file(self.config_file, content, mode=PRIVATE_FILE_MODE)
        self.logger.info("Wrote wings configuration to %s", self.config_file)

    def wait_for_port(self, host: str, port: int, attempts: int, interval: float):
        for attempt in range(1, attempts + 1):
            try:
                connection = self.connect((host, port), timeout=interval or 1.0)
            except OSError as exc:
                self.logger.debug("Wings port check %s/%s failed: %s", attempt, attempts, exc)
                if attempt < attempts:
                    self.sleep(interval)
                continue
            connection.close()
            self.console.print(f"[green]Wings is accepting connections on {host}:{port}.[/green]")
            return
        raise ProvisionError(
            actionable_error("node_port_timeout", host=host, port=port, attempts=attempts)
        )

    # -- stage entry point ---------------------------------------------

    def install(self, request, settings, run_cmd) -> StageResult:
        node_domain: Optional[str] = request.node_domain or request.domain
        self.console.print(f"[blue]Installing Wings node for {node_domain}...[/blue]")

        self.install_runtime(run_cmd)
        os.makedirs(os.path.dirname(self.config_file), exist_ok=True)
        self.install_binary(settings.wings_version)

        warning = None
        tls = False
        if request.ssl:
            tls = self.proxy_service.request_certificate(node_domain, request.email, run_cmd)
            if not tls:
                warning = self.proxy_service.certificate_failure(
                    "node_agent", node_domain, settings.tls_policy
                )

        certificate_paths = self.proxy_service.certificate_paths(node_domain)
        self.proxy_service.activate(
            ProxyConfig(
                name="wings",
                server_name=node_domain,
                template="wings-nginx.conf.j2",
                context={
                    "tls": tls,
                    "listen_port": WINGS_API_PORT,
                    "upstream_host": WINGS_BIND_HOST,
                    "upstream_port": WINGS_INTERNAL_PORT,
                    "panel_url": request.panel_url,
                    **certificate_paths,
                },
            ),
            run_cmd,
        )

        allocation = self.allocation(settings.reservation_policy)
        node_id = self.ensure_node(node_domain, "https" if tls else "http", allocation, run_cmd)
        panel_config = self.fetch_node_configuration(node_id, run_cmd)
        self.write_config(
            self.build_config(panel_config, request.panel_url, certificate_paths, settings.trusted_proxies)
        )

        self.supervisor_service.install_unit(wings_unit(), run_cmd)
        self.wait_for_port(
            WINGS_BIND_HOST,
            WINGS_INTERNAL_PORT,
            settings.node_port_check_attempts,
            settings.node_port_check_interval,
        )

        if warning is not None:
            return warning
        return StageResult(
            name="node_agent",
            status="success",
            detail=f"node {node_id} at {'https' if tls else 'http'}://{node_domain}:{WINGS_API_PORT}",
        )
