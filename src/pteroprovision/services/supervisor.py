"""systemd unit and crontab registration for pteroprovision."""

import os

from pteroprovision.constants import PHP_BINARY, SYSTEMD_DIR
from pteroprovision.models import ServiceUnit


def queue_worker_unit(panel_dir: str, service_user: str) -> ServiceUnit:
    return ServiceUnit(
        name="pteroq",
        description="Pterodactyl Queue Worker",
        exec_start=f"{PHP_BINARY} {panel_dir}/artisan queue:work --queue=high,standard,low --sleep=3 --tries=3",
        user=service_user,
        working_directory=panel_dir,
        after="redis-server.service",
        restart="on-failure",
        restart_sec="5s",
        start_limit_interval=600,
        start_limit_burst=5,
    )


def schedule_line(panel_dir: str) -> str:
    return f"* * * * * php {panel_dir}/artisan schedule:run >> /dev/null 2>&1"


class SupervisorService:
    """Installs systemd units and the scheduler crontab entry."""

    def __init__(self, logger, console, template_service, systemd_dir: str = SYSTEMD_DIR):
        self.logger = logger
        self.console = console
        self.template_service = template_service
        self.systemd_dir = systemd_dir

    def unit_path(self, unit: ServiceUnit) -> str:
        return os.path.join(self.systemd_dir, unit.unit_name)

    def install_unit(self, unit: ServiceUnit, run_cmd):
        self.template_service.render_to_file("service.j2", {"unit": unit}, self.unit_path(unit))
        run_cmd(["systemctl", "daemon-reload"])
        run_cmd(["systemctl", "enable", "--now", unit.unit_name])
        self.logger.info("Enabled %s", unit.unit_name)

    def register_cron(self, line: str, run_cmd) -> bool:
        result = run_cmd(["crontab", "-l", "-u", "root"], check=False, capture_output=True)
        current = (result.stdout or "") if result.returncode == 0 else ""
        existing = [entry for entry in current.splitlines() if entry.strip()]
        if line in (entry.strip() for entry in existing):
            self.logger.info("Scheduler crontab entry already present. Skipping.")
            return False

        content = "\n".join(existing + [line]) + "\n"
        run_cmd(["crontab", "-u", "root", "-"], input_text=content)
        self.logger.info("Added scheduler crontab entry.")
        return True

    def register_panel_services(self, panel_dir: str, service_user: str, run_cmd):
        self.console.print("[blue]Registering queue worker and scheduler...[/blue]")
        run_cmd(["systemctl", "enable", "--now", "redis-server"])
        self.install_unit(queue_worker_unit(panel_dir, service_user), run_cmd)
        self.register_cron(schedule_line(panel_dir), run_cmd)
        self.console.print("[green]Queue worker enabled and scheduler registered.[/green]")
