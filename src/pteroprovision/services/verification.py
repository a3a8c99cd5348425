"""Post-install HTTP health polling."""

import time
import warnings
from typing import Callable

import requests
from urllib3.exceptions import InsecureRequestWarning

from pteroprovision.errors_catalog import actionable_error
from pteroprovision.models import StageResult


class HealthCheckService:
    """Polls the panel URL until it answers 200 or the attempts run out."""

    def __init__(
        self,
        logger,
        console,
        requests_module=requests,
        sleep: Callable[[float], None] = time.sleep,
        request_timeout: float = 10.0,
    ):
        self.logger = logger
        self.console = console
        self.requests = requests_module
        self.sleep = sleep
        self.request_timeout = request_timeout

    def check(self, url: str) -> bool:
        try:
            # Certificates may still be self-signed or missing on first boot.
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", InsecureRequestWarning)
                response = self.requests.get(
                    url, timeout=self.request_timeout, verify=False, allow_redirects=True
                )
        except self.requests.RequestException as exc:
            self.logger.debug("Health check request to %s failed: %s", url, exc)
            return False

        self.logger.debug("Health check %s returned HTTP %s", url, response.status_code)
        return response.status_code == 200

    def verify(self, url: str, attempts: int, interval: float) -> StageResult:
        self.console.print(f"[blue]Checking {url}...[/blue]")
        for attempt in range(1, attempts + 1):
            if self.check(url):
                self.console.print(f"[green]Panel is responding at {url}.[/green]")
                return StageResult(
                    name="verification", status="success", detail=f"HTTP 200 after {attempt} attempt(s)"
                )
            if attempt < attempts:
                self.sleep(interval)

        message = actionable_error("health_check_failed", url=url, attempts=attempts)
        self.console.print(f"[yellow]Warning:[/yellow] {message}")
        self.logger.warning(message)
        return StageResult(name="verification", status="warning", detail=message)
