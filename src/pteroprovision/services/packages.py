"""System package provisioning for pteroprovision."""

import os
import shutil
import tempfile
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from pteroprovision.constants import (
    COMPOSER_INSTALLER_URL,
    PANEL_PACKAGES,
    PHP_BINARY,
    PREREQUISITE_PACKAGES,
)
from pteroprovision.errors import ProvisionError

APT_SOURCES_DIR = "/etc/apt/sources.list.d"
APT_KEYRINGS_DIR = "/usr/share/keyrings"
APT_ENV = {
    "DEBIAN_FRONTEND": "noninteractive",
    "PATH": "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin",
}
# apt-get exits 100 while another process holds the dpkg lock.
APT_LOCK_RETRY = {
    "retry_count": 3,
    "retry_backoff_seconds": 15.0,
    "retry_on_returncodes": (100,),
}


@dataclass(frozen=True)
class AptSource:
    """A third-party apt repository.

    ``ppa`` sources are added through ``add-apt-repository``; the others are
    written as a ``.list`` file signed by a dearmored key.
    """

    name: str
    ppa: Optional[str] = None
    line: Optional[str] = None
    key_url: Optional[str] = None

    @property
    def keyring(self) -> str:
        return os.path.join(APT_KEYRINGS_DIR, f"{self.name}-archive-keyring.gpg")


PANEL_SOURCES = (
    AptSource(name="ondrej-php", ppa="ppa:ondrej/php"),
    AptSource(
        name="redis",
        line=(
            "deb [signed-by=/usr/share/keyrings/redis-archive-keyring.gpg] "
            "https://packages.redis.io/deb jammy main"
        ),
        key_url="https://packages.redis.io/gpg",
    ),
    AptSource(
        name="nodesource",
        line=(
            "deb [signed-by=/usr/share/keyrings/nodesource-archive-keyring.gpg] "
            "https://deb.nodesource.com/node_20.x nodistro main"
        ),
        key_url="https://deb.nodesource.com/gpgkey/nodesource-repo.gpg.key",
    ),
)


class PackageService:
    """Registers apt sources and installs the panel's system packages."""

    def __init__(
        self,
        logger,
        console,
        download_service,
        filesystem_service,
        sources: Sequence[AptSource] = PANEL_SOURCES,
        sources_dir: str = APT_SOURCES_DIR,
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        self.logger = logger
        self.console = console
        self.download_service = download_service
        self.filesystem_service = filesystem_service
        self.sources = sources
        self.sources_dir = sources_dir
        self.which = which

    def apt_update(self, run_cmd):
        run_cmd(["apt-get", "update", "-q"], env=APT_ENV, **APT_LOCK_RETRY)

    def apt_install(self, packages: List[str], run_cmd):
        self.logger.info("Installing packages: %s", ", ".join(packages))
        run_cmd(
            ["apt-get", "install", "-y", "-q", "--no-install-recommends", *packages],
            env=APT_ENV,
            **APT_LOCK_RETRY,
        )

    def ppa_present(self, ppa: str) -> bool:
        """True when any sources file already references the PPA."""
        owner_repo = ppa.split(":", 1)[-1]
        needle = f"ppa.launchpadcontent.net/{owner_repo}"
        legacy_needle = f"ppa.launchpad.net/{owner_repo}"
        if not os.path.isdir(self.sources_dir):
            return False
        for file_name in os.listdir(self.sources_dir):
            if not file_name.endswith((".list", ".sources")):
                continue
            try:
                with open(os.path.join(self.sources_dir, file_name), "r", encoding="utf-8") as file_obj:
                    content = file_obj.read()
            except OSError:
                continue
            if needle in content or legacy_needle in content:
                return True
        return False

    def source_present(self, source: AptSource) -> bool:
        if source.ppa:
            return self.ppa_present(source.ppa)

        list_file = os.path.join(self.sources_dir, f"{source.name}.list")
        if not os.path.exists(list_file):
            return False
        with open(list_file, "r", encoding="utf-8") as file_obj:
            return source.line in file_obj.read().splitlines()

    def add_source(self, source: AptSource, run_cmd) -> bool:
        if self.source_present(source):
            self.logger.info("Apt source '%s' already configured. Skipping.", source.name)
            return False

        self.console.print(f"[blue]Adding apt source {source.name}...[/blue]")
        if source.ppa:
            run_cmd(["add-apt-repository", "-y", source.ppa], env=APT_ENV)
            return True

        if source.key_url:
            with tempfile.TemporaryDirectory(prefix="pteroprovision-key-") as temp_dir:
                armored = os.path.join(temp_dir, f"{source.name}.asc")
                self.download_service.download_file(
                    source.key_url, armored, description=f"Downloading {source.name} signing key..."
                )
                run_cmd(["gpg", "--batch", "--yes", "--dearmor", "-o", source.keyring, armored])

        self.filesystem_service.write_file(
            os.path.join(self.sources_dir, f"{source.name}.list"),
            f"{source.line}\n",
        )
        return True

    def install_composer(self, run_cmd) -> bool:
        if self.which("composer"):
            self.logger.info("Composer already installed. Skipping.")
            return False

        self.console.print("[blue]Installing Composer...[/blue]")
        with tempfile.TemporaryDirectory(prefix="pteroprovision-composer-") as temp_dir:
            installer = os.path.join(temp_dir, "composer-setup.php")
            self.download_service.download_file(
                COMPOSER_INSTALLER_URL, installer, description="Downloading Composer installer..."
            )
            run_cmd(
                [PHP_BINARY, installer, "--install-dir=/usr/local/bin", "--filename=composer"],
                cwd=temp_dir,
            )
        return True

    def install_yarn(self, run_cmd) -> bool:
        if self.which("yarn"):
            self.logger.info("Yarn already installed. Skipping.")
            return False

        self.console.print("[blue]Installing Yarn...[/blue]")
        run_cmd(["npm", "install", "-g", "yarn"])
        return True

    def provision(self, run_cmd):
        self.console.print("[blue]Installing system packages...[/blue]")
        self.apt_update(run_cmd)
        self.apt_install(PREREQUISITE_PACKAGES, run_cmd)

        added = [source.name for source in self.sources if self.add_source(source, run_cmd)]
        if added:
            self.apt_update(run_cmd)

        self.apt_install(PANEL_PACKAGES, run_cmd)
        self.install_composer(run_cmd)
        self.install_yarn(run_cmd)

        for command in ("php", "mysql", "nginx", "certbot", "composer", "yarn"):
            if not self.which(command):
                raise ProvisionError(
                    f"Command '{command}' is still missing after package installation."
                )
        self.console.print("[green]System packages installed.[/green]")
