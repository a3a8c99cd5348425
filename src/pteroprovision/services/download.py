"""Download service with progress reporting and retries."""

import os
import time
from urllib.parse import urlparse

from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from pteroprovision.errors import ProvisionError
from pteroprovision.errors_catalog import actionable_error


class DownloadService:
    """Fetches release artifacts over HTTPS into local files."""

    def __init__(
        self,
        logger,
        console,
        requests_module,
        timeout: float = 60.0,
        retry_count: int = 1,
        retry_backoff_seconds: float = 2.0,
    ):
        self.logger = logger
        self.console = console
        self.requests = requests_module
        self.timeout = timeout
        self.retry_count = retry_count
        self.retry_backoff_seconds = retry_backoff_seconds

    def download_file(self, url: str, dest_path: str, description: str = "Downloading..."):
        max_attempts = max(1, self.retry_count + 1)
        for attempt in range(1, max_attempts + 1):
            try:
                self._download_once(url, dest_path, description)
                return
            except self.requests.RequestException as exc:
                self._remove_partial(dest_path)
                status = getattr(getattr(exc, "response", None), "status_code", None)
                # 4xx answers will not change on retry
                retryable = status is None or status >= 500
                if attempt < max_attempts and retryable:
                    self.logger.warning(
                        "Download attempt %s/%s failed for %s: %s. Retrying in %.1fs.",
                        attempt,
                        max_attempts,
                        url,
                        exc,
                        self.retry_backoff_seconds,
                    )
                    time.sleep(self.retry_backoff_seconds)
                    continue
                raise ProvisionError(
                    actionable_error(
                        "download_failed",
                        label=description,
                        reason=exc,
                        host=urlparse(url).netloc or url,
                    )
                ) from exc

    def _download_once(self, url: str, dest_path: str, description: str):
        self.logger.info("Downloading %s to %s", url, dest_path)

        with self.requests.get(url, stream=True, timeout=self.timeout, allow_redirects=True) as response:
            response.raise_for_status()
            total_size = int(response.headers.get("Content-Length", 0))

            os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)

            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                "•",
                TimeElapsedColumn(),
                console=self.console,
            ) as progress:
                task = progress.add_task(f"[cyan]{description}", total=total_size or None)
                with open(dest_path, "wb") as file_obj:
                    for chunk in response.iter_content(chunk_size=8192):
                        if not chunk:
                            continue
                        file_obj.write(chunk)
                        progress.update(task, advance=len(chunk))

    @staticmethod
    def _remove_partial(dest_path: str):
        try:
            os.remove(dest_path)
        except OSError:
            pass
