"""Panel artifact, build and configuration services for pteroprovision."""

import os
import shutil
import tempfile
from typing import List, Optional

from pteroprovision.constants import (
    BUILD_MANIFEST_RELPATH,
    DB_PORT,
    PANEL_MARKER_FILE,
    PANEL_RELEASE_URL,
    PHP_BINARY,
    REDIS_HOST,
    REDIS_PORT,
)
from pteroprovision.errors import ProvisionError
from pteroprovision.errors_catalog import actionable_error

PRESERVED_FILES = (".env",)
DIAGNOSTIC_PATHS = (
    ".",
    ".env",
    "storage",
    "bootstrap/cache",
    "vendor",
    "node_modules",
    "public",
    "public/assets",
)


def release_url(template: str, version: str, **kwargs: str) -> str:
    path = "latest/download" if version == "latest" else f"download/{version}"
    return template.format(path=path, **kwargs)


class PanelService:
    """Fetches, builds and configures the panel application."""

    def __init__(
        self,
        logger,
        console,
        download_service,
        archive_service,
        filesystem_service,
        panel_dir: str,
        service_user: str,
    ):
        self.logger = logger
        self.console = console
        self.download_service = download_service
        self.archive_service = archive_service
        self.filesystem_service = filesystem_service
        self.panel_dir = panel_dir
        self.service_user = service_user

    # -- artifact fetch -------------------------------------------------

    def fetch(self, version: str):
        """Downloads and unpacks the release into ``panel_dir``.

        Extraction happens in a staging directory next to ``panel_dir``; the
        live directory is only touched once the archive is fully unpacked.
        """
        url = release_url(PANEL_RELEASE_URL, version)
        self.console.print(f"[blue]Downloading panel release ({version})...[/blue]")

        parent = os.path.dirname(self.panel_dir.rstrip("/")) or "/"
        os.makedirs(parent, exist_ok=True)

        with tempfile.TemporaryDirectory(prefix=".pteroprovision-", dir=parent) as work_dir:
            archive_path = os.path.join(work_dir, "panel.tar.gz")
            self.download_service.download_file(url, archive_path, "Downloading panel.tar.gz")

            staging_dir = os.path.join(work_dir, "staging")
            self.archive_service.safe_extract_tar(archive_path, staging_dir)
            self.archive_service.flatten_wrapper_dir(staging_dir, PANEL_MARKER_FILE)

            if not os.path.exists(os.path.join(staging_dir, PANEL_MARKER_FILE)):
                raise ProvisionError(
                    f"Panel archive from {url} does not contain `{PANEL_MARKER_FILE}`. "
                    "Check the requested release version."
                )

            self._install_tree(staging_dir)

        self.filesystem_service.chown_tree(self.panel_dir, self.service_user)
        self.console.print(f"[green]Panel code extracted to {self.panel_dir}.[/green]")

    def _install_tree(self, staging_dir: str):
        if os.path.isdir(self.panel_dir):
            for name in PRESERVED_FILES:
                existing = os.path.join(self.panel_dir, name)
                if os.path.exists(existing) and not os.path.exists(os.path.join(staging_dir, name)):
                    self.logger.info("Keeping existing %s", existing)
                    shutil.copy2(existing, os.path.join(staging_dir, name))
            shutil.rmtree(self.panel_dir)
        shutil.move(staging_dir, self.panel_dir)

    # -- dependency build ---------------------------------------------

    def _path(self, *parts: str) -> str:
        return os.path.join(self.panel_dir, *parts)

    def ownership_report(self) -> List[str]:
        return self.filesystem_service.describe_ownership(
            [os.path.normpath(self._path(relpath)) for relpath in DIAGNOSTIC_PATHS]
        )

    def _run_as_service_user(self, cmd: List[str], label: str, run_cmd, **kwargs):
        try:
            return run_cmd(cmd, cwd=self.panel_dir, user=self.service_user, **kwargs)
        except ProvisionError as exc:
            raise self._permission_failure(label, str(exc)) from exc

    def _permission_failure(self, label: str, detail: str) -> ProvisionError:
        report = self.ownership_report()
        self.logger.error("Ownership of %s at failure time:\n%s", self.panel_dir, "\n".join(report))
        message = actionable_error(
            "permission_mismatch", label=label, user=self.service_user, path=self.panel_dir
        )
        return ProvisionError(f"{message}\n{detail}\nOwnership:\n" + "\n".join(report))

    def build(self, run_cmd):
        self.console.print("[blue]Installing PHP dependencies with Composer...[/blue]")
        self._run_as_service_user(
            ["composer", "install", "--no-dev", "--optimize-autoloader", "--no-interaction"],
            "composer install",
            run_cmd,
        )

        self.console.print("[blue]Building frontend assets...[/blue]")
        self._run_as_service_user(
            ["yarn", "install", "--frozen-lockfile", "--non-interactive"], "yarn install", run_cmd
        )
        try:
            run_cmd(
                ["yarn", "run", "build:production"],
                cwd=self.panel_dir,
                user=self.service_user,
            )
        except ProvisionError as exc:
            self.logger.warning("Production asset build failed, trying development build: %s", exc)
            self.console.print("[yellow]Production build failed. Falling back to development build...[/yellow]")
            self._run_as_service_user(["yarn", "run", "build"], "yarn run build", run_cmd)

        manifest_path = self._path(BUILD_MANIFEST_RELPATH)
        if not os.path.isfile(manifest_path):
            report = self.ownership_report()
            self.logger.error("Ownership of %s:\n%s", self.panel_dir, "\n".join(report))
            raise ProvisionError(
                actionable_error("build_manifest_missing", path=manifest_path)
                + "\nOwnership:\n"
                + "\n".join(report)
            )
        self.console.print("[green]Panel dependencies and assets built.[/green]")

    # -- application configuration -------------------------------------

    def _artisan(self, args: List[str], run_cmd, sensitive=(), capture_output: bool = False):
        return run_cmd(
            [PHP_BINARY, "artisan", *args],
            cwd=self.panel_dir,
            user=self.service_user,
            sensitive=sensitive,
            capture_output=capture_output,
        )

    def read_env_value(self, key: str) -> Optional[str]:
        env_path = self._path(".env")
        if not os.path.exists(env_path):
            return None
        with open(env_path, "r", encoding="utf-8") as file_obj:
            for line in file_obj:
                if line.startswith(f"{key}="):
                    return line.split("=", 1)[1].strip().strip("\"'")
        return None

    def prepare_env_file(self, run_cmd):
        env_path = self._path(".env")
        if not os.path.exists(env_path):
            shutil.copy2(self._path(".env.example"), env_path)
            self.filesystem_service.chown_tree(env_path, self.service_user)
            self.filesystem_service.set_permissions(env_path, 0o640)

        if self.read_env_value("APP_KEY"):
            self.logger.info("APP_KEY already set. Keeping the existing application key.")
            return
        self._artisan(["key:generate", "--force"], run_cmd)

    def configure(self, request, settings, secrets, database_service, run_cmd):
        self.console.print("[blue]Configuring panel environment...[/blue]")
        self.prepare_env_file(run_cmd)

        self._artisan(
            [
                "p:environment:setup",
                f"--author={request.email}",
                f"--url={request.panel_url}",
                f"--timezone={settings.timezone}",
                "--cache=redis",
                "--session=redis",
                "--queue=redis",
                f"--redis-host={REDIS_HOST}",
                "--redis-pass=null",
                f"--redis-port={REDIS_PORT}",
                "--telemetry=false",
                "--settings-ui=true",
                "--no-interaction",
            ],
            run_cmd,
        )
        self._artisan(
            [
                "p:environment:database",
                f"--host={database_service.db_host}",
                f"--port={DB_PORT}",
                f"--database={database_service.db_name}",
                f"--username={database_service.db_user}",
                f"--password={secrets.db_password}",
                "--no-interaction",
            ],
            run_cmd,
            sensitive=[secrets.db_password],
        )

        self.console.print("[blue]Running database migrations...[/blue]")
        self._artisan(["migrate", "--seed", "--force"], run_cmd)

        if database_service.admin_exists(request.email, request.username, run_cmd):
            self.console.print(
                f"[yellow]Administrator '{request.username}' already exists. Skipping creation.[/yellow]"
            )
        else:
            self._artisan(
                [
                    "p:user:make",
                    f"--email={request.email}",
                    f"--username={request.username}",
                    f"--name-first={request.first_name}",
                    f"--name-last={request.last_name}",
                    f"--password={request.password}",
                    "--admin=1",
                    "--no-interaction",
                ],
                run_cmd,
                sensitive=[request.password],
            )

        self.filesystem_service.chown_tree(self.panel_dir, self.service_user)
        self.console.print("[green]Panel configured and administrator account ready.[/green]")
