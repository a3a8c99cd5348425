"""nginx site management and certificate requests for pteroprovision."""

import os
from typing import Dict

from pteroprovision.constants import (
    LETSENCRYPT_LIVE_DIR,
    NGINX_SITES_AVAILABLE,
    NGINX_SITES_ENABLED,
    PHP_FPM_SOCKET,
)
from pteroprovision.errors import ProvisionError
from pteroprovision.errors_catalog import actionable_error
from pteroprovision.models import ProxyConfig, StageResult, TlsPolicy

DEFAULT_SITE = "default"
CERTBOT_TIMEOUT_SECONDS = 600


class ProxyService:
    """Renders nginx sites, activates them and obtains TLS certificates."""

    def __init__(
        self,
        logger,
        console,
        template_service,
        filesystem_service,
        sites_available: str = NGINX_SITES_AVAILABLE,
        sites_enabled: str = NGINX_SITES_ENABLED,
        letsencrypt_live_dir: str = LETSENCRYPT_LIVE_DIR,
    ):
        self.logger = logger
        self.console = console
        self.template_service = template_service
        self.filesystem_service = filesystem_service
        self.sites_available = sites_available
        self.sites_enabled = sites_enabled
        self.letsencrypt_live_dir = letsencrypt_live_dir

    def certificate_paths(self, domain: str) -> Dict[str, str]:
        live = os.path.join(self.letsencrypt_live_dir, domain)
        return {
            "certificate_path": os.path.join(live, "fullchain.pem"),
            "certificate_key_path": os.path.join(live, "privkey.pem"),
        }

    def remove_default_site(self):
        self.filesystem_service.remove_file(os.path.join(self.sites_enabled, DEFAULT_SITE))

    def activate(self, site: ProxyConfig, run_cmd):
        available = os.path.join(self.sites_available, f"{site.name}.conf")
        enabled = os.path.join(self.sites_enabled, f"{site.name}.conf")

        context = dict(site.context)
        context["server_name"] = site.server_name
        self.template_service.render_to_file(site.template, context, available)
        self.filesystem_service.symlink(available, enabled)

        run_cmd(["nginx", "-t"])
        run_cmd(["systemctl", "enable", "--now", "nginx"])
        run_cmd(["systemctl", "reload", "nginx"])
        self.logger.info("nginx site %s active for %s", site.name, site.server_name)

    def request_certificate(self, domain: str, email: str, run_cmd) -> bool:
        """Asks Let's Encrypt for a certificate using the running nginx for HTTP-01.

        Returns False instead of raising so callers can apply their TLS policy.
        """
        self.console.print(f"[blue]Requesting TLS certificate for {domain}...[/blue]")
        try:
            run_cmd(
                [
                    "certbot",
                    "certonly",
                    "--nginx",
                    "--non-interactive",
                    "--agree-tos",
                    "--no-eff-email",
                    "--keep-until-expiring",
                    "--email",
                    email,
                    "-d",
                    domain,
                ],
                timeout=CERTBOT_TIMEOUT_SECONDS,
            )
        except ProvisionError as exc:
            self.logger.warning("certbot failed for %s: %s", domain, exc)
            return False

        if not os.path.exists(self.certificate_paths(domain)["certificate_path"]):
            self.logger.warning("certbot reported success but no certificate exists for %s", domain)
            return False
        return True

    def certificate_failure(self, stage: str, domain: str, tls_policy: TlsPolicy) -> StageResult:
        message = actionable_error("certificate_failed", domain=domain)
        if tls_policy == TlsPolicy.STRICT:
            raise ProvisionError(message)

        self.console.print(f"[yellow]Warning:[/yellow] {message}")
        self.logger.warning(message)
        return StageResult(name=stage, status="warning", detail=message)

    def configure_panel(self, request, settings, panel_dir: str, run_cmd) -> StageResult:
        self.console.print("[blue]Configuring nginx for the panel...[/blue]")
        self.remove_default_site()

        base_context = {"panel_dir": panel_dir, "php_fpm_socket": PHP_FPM_SOCKET}
        self.activate(
            ProxyConfig(
                name="pterodactyl",
                server_name=request.domain,
                template="panel-nginx.conf.j2",
                context=base_context,
            ),
            run_cmd,
        )

        if not request.ssl:
            self.console.print("[yellow]TLS setup skipped per arguments.[/yellow]")
            return StageResult(name="reverse_proxy", status="success", detail="HTTP only")

        if not self.request_certificate(request.domain, request.email, run_cmd):
            return self.certificate_failure("reverse_proxy", request.domain, settings.tls_policy)

        self.activate(
            ProxyConfig(
                name="pterodactyl",
                server_name=request.domain,
                template="panel-nginx-ssl.conf.j2",
                context={**base_context, **self.certificate_paths(request.domain)},
            ),
            run_cmd,
        )
        self.console.print(f"[green]TLS enabled for {request.domain}.[/green]")
        return StageResult(name="reverse_proxy", status="success", detail="TLS active")
