import logging
import subprocess
import uuid
from typing import List, Optional

import requests
from rich.console import Console
from rich.table import Table

from .constants import EXIT_STAGE_FAILURE, EXIT_SUCCESS, PANEL_DIR, SERVICE_USER
from .errors import ProvisionError, StageFailedError
from .models import GeneratedSecrets, InstallRequest, ProvisionSettings, StageResult
from .services.archive import ArchiveService
from .services.command_runner import CommandRunner
from .services.credentials import CredentialService
from .services.database import DatabaseService
from .services.download import DownloadService
from .services.filesystem import FileSystemService
from .services.manifest import ManifestService
from .services.node_agent import NodeAgentService
from .services.packages import PackageService
from .services.panel import PanelService
from .services.proxy import ProxyService
from .services.summary import SummaryService
from .services.supervisor import SupervisorService
from .services.templates import TemplateService
from .services.validation import ValidationService
from .services.verification import HealthCheckService

console = Console()
logger = logging.getLogger("pteroprovision")

STATUS_STYLES = {
    "success": "green",
    "warning": "yellow",
    "skipped": "dim",
    "failed": "bold red",
}


class PanelProvisioner:
    """Runs the installation stages in order and stops at the first fatal failure."""

    def __init__(
        self,
        request: InstallRequest,
        settings: Optional[ProvisionSettings] = None,
        command_runner: Optional[CommandRunner] = None,
        validation_service: Optional[ValidationService] = None,
        requests_module=requests,
        panel_dir: str = PANEL_DIR,
        service_user: str = SERVICE_USER,
    ):
        self.request = request
        self.settings = settings or ProvisionSettings()
        self.panel_dir = panel_dir
        self.service_user = service_user
        self.secrets: Optional[GeneratedSecrets] = None

        self.command_runner = command_runner or CommandRunner(logger=logger)
        self.validation_service = validation_service or ValidationService()
        self.manifest_service = ManifestService(logger=logger, manifest_file=self.settings.manifest_file)
        self.credential_service = CredentialService(self.settings.secret_length)

        self.filesystem_service = FileSystemService(logger=logger, console=console)
        self.template_service = TemplateService(filesystem_service=self.filesystem_service)
        self.archive_service = ArchiveService(logger=logger)
        self.download_service = DownloadService(
            logger=logger,
            console=console,
            requests_module=requests_module,
            timeout=self.settings.download_timeout,
        )
        self.package_service = PackageService(
            logger=logger,
            console=console,
            download_service=self.download_service,
            filesystem_service=self.filesystem_service,
        )
        self.database_service = DatabaseService(
            logger=logger,
            console=console,
            db_name=self.settings.db_name,
            db_user=self.settings.db_user,
        )
        self.panel_service = PanelService(
            logger=logger,
            console=console,
            download_service=self.download_service,
            archive_service=self.archive_service,
            filesystem_service=self.filesystem_service,
            panel_dir=self.panel_dir,
            service_user=self.service_user,
        )
        self.supervisor_service = SupervisorService(
            logger=logger, console=console, template_service=self.template_service
        )
        self.proxy_service = ProxyService(
            logger=logger,
            console=console,
            template_service=self.template_service,
            filesystem_service=self.filesystem_service,
        )
        self.node_agent_service = NodeAgentService(
            logger=logger,
            console=console,
            download_service=self.download_service,
            filesystem_service=self.filesystem_service,
            proxy_service=self.proxy_service,
            supervisor_service=self.supervisor_service,
            database_service=self.database_service,
            panel_dir=self.panel_dir,
            service_user=self.service_user,
        )
        self.health_check_service = HealthCheckService(
            logger=logger, console=console, requests_module=requests_module
        )
        self.summary_service = SummaryService(
            logger=logger, console=console, filesystem_service=self.filesystem_service
        )

    def _run_cmd(self, cmd: List[str], **kwargs) -> subprocess.CompletedProcess:
        return self.command_runner.run(cmd, **kwargs)

    def _run_step(self, name: str, callback, *args, fatal: bool = True, **kwargs):
        self.manifest_service.stage_started(name)
        logger.debug("Stage started: %s", name)

        try:
            outcome = callback(*args, **kwargs)
        except ProvisionError as exc:
            if fatal:
                self.manifest_service.stage_finished(StageResult(name=name, status="failed", detail=str(exc)))
                raise StageFailedError(name, str(exc), exit_code=exc.exit_code) from exc
            logger.warning("Stage %s failed but is not fatal: %s", name, exc)
            outcome = StageResult(name=name, status="warning", detail=str(exc))
        except Exception as exc:
            self.manifest_service.stage_finished(StageResult(name=name, status="failed", detail=str(exc)))
            raise

        result = outcome if isinstance(outcome, StageResult) else StageResult(name=name, status="success")
        self.manifest_service.stage_finished(result)
        return outcome

    # -- stages ----------------------------------------------------------

    def plan(self) -> List[str]:
        stages = [
            "validate_host",
            "packages",
            "secrets",
            "datastore",
            "artifact_fetch",
            "dependency_build",
            "app_config",
            "service_registration",
            "reverse_proxy",
        ]
        if self.request.wings:
            stages.append("node_agent")
        stages.extend(["verification", "summary"])
        return stages

    def validate_host(self):
        console.print("[blue]Validating host...[/blue]")
        return self.validation_service.validate_host(logger, console)

    def show_configuration(self):
        table = Table(title="Installation settings")
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        rows = [
            ("Panel domain", self.request.domain),
            ("Panel URL", self.request.panel_url),
            ("TLS", "yes" if self.request.ssl else "no"),
            ("TLS policy", self.settings.tls_policy.value),
            ("Admin", f"{self.request.username} <{self.request.email}>"),
            ("Admin name", f"{self.request.first_name} {self.request.last_name}"),
            ("Admin password", "********"),
            ("Panel version", self.settings.panel_version),
            ("Database", f"{self.settings.db_name} ({self.settings.db_user})"),
            ("Timezone", self.settings.timezone),
            ("Wings", "yes" if self.request.wings else "no"),
        ]
        if self.request.wings:
            policy = self.settings.reservation_policy
            reserve = (
                f"{policy.reserve_percent}%"
                if policy.mode == "percent"
                else f"{policy.reserve_memory_mib} MiB memory / {policy.reserve_disk_mib} MiB disk"
            )
            rows.extend(
                [
                    ("Node domain", self.request.node_domain),
                    ("Wings version", self.settings.wings_version),
                    ("Host reservation", reserve),
                ]
            )
        for key, value in rows:
            table.add_row(key, str(value))
        console.print(table)

    def install_packages(self):
        self.package_service.provision(self._run_cmd)

    def generate_secrets(self) -> StageResult:
        if self.secrets is None:
            self.secrets = self.credential_service.generate(
                include_root=self.settings.rotate_db_root_password
            )
        detail = "database password" + (" and root password" if self.secrets.db_root_password else "")
        return StageResult(name="secrets", status="success", detail=detail)

    def provision_datastore(self):
        self.database_service.provision(self.secrets, self._run_cmd)

    def fetch_panel(self):
        self.panel_service.fetch(self.settings.panel_version)

    def build_panel(self):
        self.panel_service.build(self._run_cmd)

    def configure_panel(self):
        self.panel_service.configure(
            self.request, self.settings, self.secrets, self.database_service, self._run_cmd
        )

    def register_services(self):
        self.supervisor_service.register_panel_services(self.panel_dir, self.service_user, self._run_cmd)

    def configure_proxy(self) -> StageResult:
        return self.proxy_service.configure_panel(
            self.request, self.settings, self.panel_dir, self._run_cmd
        )

    def install_node_agent(self) -> StageResult:
        return self.node_agent_service.install(self.request, self.settings, self._run_cmd)

    def verify(self) -> StageResult:
        return self.health_check_service.verify(
            self.request.panel_url,
            self.settings.health_check_attempts,
            self.settings.health_check_interval,
        )

    def write_summary(self) -> StageResult:
        proxy_result = self.manifest_service.result_for("reverse_proxy")
        tls_active = bool(
            self.request.ssl and proxy_result is not None and proxy_result.status == "success"
        )
        path = self.summary_service.write(
            self.settings.summary_file,
            self.request,
            self.secrets,
            self.database_service,
            tls_active=tls_active,
            node_installed=self.request.wings,
        )
        return StageResult(name="summary", status="success", detail=path)

    def print_plan(self):
        console.print("[bold]Dry run: no changes will be made.[/bold]")
        self.show_configuration()
        for index, name in enumerate(self.plan(), start=1):
            console.print(f"  {index:>2}. {name}")

    def print_results(self):
        table = Table(title="Installation result")
        table.add_column("Stage", style="cyan")
        table.add_column("Status")
        table.add_column("Detail", overflow="fold")
        for result in self.manifest_service.results:
            style = STATUS_STYLES.get(result.status, "")
            table.add_row(result.name, f"[{style}]{result.status}[/{style}]", result.detail or "")
        console.print(table)

    def run(self) -> int:
        exit_code = EXIT_STAGE_FAILURE
        manifest_status = "failed"
        manifest_error: Optional[str] = None

        try:
            logger.info("Starting pteroprovision for %s", self.request.domain)
            self.manifest_service.start_run(
                run_id=uuid.uuid4().hex[:10],
                metadata={
                    "domain": self.request.domain,
                    "ssl": self.request.ssl,
                    "wings": self.request.wings,
                    "node_domain": self.request.node_domain,
                    "panel_version": self.settings.panel_version,
                    "tls_policy": self.settings.tls_policy.value,
                    "dry_run": self.settings.dry_run,
                },
            )

            if self.settings.dry_run:
                self.print_plan()
                manifest_status = "dry_run"
                exit_code = EXIT_SUCCESS
                return exit_code

            self._run_step("validate_host", self.validate_host)
            self.show_configuration()
            self._run_step("packages", self.install_packages)
            self._run_step("secrets", self.generate_secrets)
            self._run_step("datastore", self.provision_datastore)
            self._run_step("artifact_fetch", self.fetch_panel)
            self._run_step("dependency_build", self.build_panel)
            self._run_step("app_config", self.configure_panel)
            self._run_step("service_registration", self.register_services)
            self._run_step("reverse_proxy", self.configure_proxy)
            if self.request.wings:
                self._run_step("node_agent", self.install_node_agent)
            self._run_step("verification", self.verify, fatal=False)
            self._run_step("summary", self.write_summary)

            self.print_results()
            console.print(f"[bold green]Pterodactyl panel is ready at {self.request.panel_url}[/bold green]")
            manifest_status = "success"
            exit_code = EXIT_SUCCESS
            return exit_code

        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            manifest_error = "Operation cancelled by user."
            manifest_status = "aborted"
            exit_code = EXIT_STAGE_FAILURE
            return exit_code
        except ProvisionError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            if self.manifest_service.results:
                self.print_results()
            manifest_error = str(exc)
            exit_code = exc.exit_code
            return exit_code
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            manifest_error = str(exc)
            exit_code = EXIT_STAGE_FAILURE
            return exit_code
        finally:
            self.manifest_service.finalize(manifest_status, error=manifest_error)
