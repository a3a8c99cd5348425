"""Subprocess execution service for pteroprovision."""

import subprocess
import time
from typing import Dict, Iterable, List, Optional

from pteroprovision.errors import ProvisionError

REDACTED = "******"


class CommandRunner:
    """Runs external commands with consistent error handling.

    Every invocation captures stderr so a failing command can always be
    reported with its own diagnostic output. Stdout is streamed to the
    terminal unless ``capture_output`` is requested.
    """

    def __init__(self, logger):
        self.logger = logger

    @staticmethod
    def _redact(text: str, sensitive: Iterable[str]) -> str:
        for value in sensitive:
            if value:
                text = text.replace(value, REDACTED)
        return text

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        timeout: Optional[float] = None,
        retry_count: int = 0,
        retry_backoff_seconds: float = 0.0,
        retry_on_returncodes: Optional[Iterable[int]] = None,
        cwd: Optional[str] = None,
        user: Optional[str] = None,
        input_text: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        sensitive: Iterable[str] = (),
    ) -> subprocess.CompletedProcess:
        if user:
            cmd = ["sudo", "-u", user, "-H", "--"] + list(cmd)

        sensitive = [value for value in sensitive if value]
        cmd_str = self._redact(" ".join(cmd), sensitive)
        self.logger.debug("Executing: %s", cmd_str)

        max_attempts = max(1, retry_count + 1)
        retry_codes = set(retry_on_returncodes or [])

        for attempt in range(1, max_attempts + 1):
            try:
                result = subprocess.run(
                    cmd,
                    text=True,
                    stdout=subprocess.PIPE if capture_output else None,
                    stderr=subprocess.PIPE,
                    input=input_text,
                    timeout=timeout,
                    cwd=cwd,
                    env=env,
                )
            except FileNotFoundError as exc:
                raise ProvisionError(
                    f"Required command not found: {cmd[0]}. Please install it and try again."
                ) from exc
            except subprocess.TimeoutExpired as exc:
                if attempt < max_attempts:
                    self.logger.warning(
                        "Command timed out on attempt %s/%s. Retrying in %.1fs: %s",
                        attempt,
                        max_attempts,
                        retry_backoff_seconds,
                        cmd_str,
                    )
                    time.sleep(retry_backoff_seconds)
                    continue
                raise ProvisionError(
                    f"Command timed out after {timeout}s: {cmd_str}"
                ) from exc
            except OSError as exc:
                raise ProvisionError(f"Failed to execute command: {cmd_str}. {exc}") from exc

            if capture_output and result.stdout:
                self.logger.debug("Command output: %s", self._redact(result.stdout.strip(), sensitive))

            stderr = self._redact((result.stderr or "").strip(), sensitive)

            if result.returncode == 0:
                if stderr:
                    self.logger.debug("Command stderr: %s", stderr)
                return result

            message = f"Command failed ({result.returncode}): {cmd_str}"
            if stderr:
                message = f"{message}\n{stderr}"

            can_retry = attempt < max_attempts and (
                not retry_codes or result.returncode in retry_codes
            )
            if can_retry:
                self.logger.warning(
                    "Command failed on attempt %s/%s and will be retried in %.1fs.\n%s",
                    attempt,
                    max_attempts,
                    retry_backoff_seconds,
                    message,
                )
                time.sleep(retry_backoff_seconds)
                continue

            if check:
                raise ProvisionError(message)

            self.logger.warning(message)
            return result

        raise ProvisionError(f"Command failed after retries: {cmd_str}")
