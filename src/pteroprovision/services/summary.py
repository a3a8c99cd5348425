"""Installation summary file."""

from typing import List, Optional

from pteroprovision.constants import PRIVATE_FILE_MODE, WINGS_API_PORT, WINGS_SFTP_PORT


class SummaryService:
    """Writes the credentials and endpoints an operator needs after install."""

    def __init__(self, logger, console, filesystem_service):
        self.logger = logger
        self.console = console
        self.filesystem_service = filesystem_service

    def render(self, request, secrets, database_service, tls_active: bool, node_installed: bool = False) -> str:
        lines: List[str] = [
            "Pterodactyl Panel installation details",
            "=" * 38,
            f"Panel URL:          {request.panel_url}",
            f"TLS:                {'enabled' if tls_active else 'disabled'}",
            "",
            f"Admin username:     {request.username}",
            f"Admin email:        {request.email}",
            f"Admin name:         {request.first_name} {request.last_name}",
            "",
            f"Database host:      {database_service.db_host}",
            f"Database name:      {database_service.db_name}",
            f"Database user:      {database_service.db_user}",
            f"Database password:  {secrets.db_password}",
        ]
        if secrets.db_root_password:
            lines.append(f"Database root pass: {secrets.db_root_password}")

        if node_installed:
            lines.extend(
                [
                    "",
                    f"Wings node:         {request.node_domain}",
                    f"Wings API port:     {WINGS_API_PORT}",
                    f"Wings SFTP port:    {WINGS_SFTP_PORT}",
                ]
            )
        return "\n".join(lines) + "\n"

    def write(
        self,
        path: str,
        request,
        secrets,
        database_service,
        tls_active: bool,
        node_installed: bool = False,
    ) -> Optional[str]:
        content = self.render(request, secrets, database_service, tls_active, node_installed)
        self.filesystem_service.write_file(path, content, mode=PRIVATE_FILE_MODE)
        self.logger.info("Installation summary written to %s", path)
        self.console.print(f"[green]Installation details saved to {path} (owner read-only).[/green]")
        return path
