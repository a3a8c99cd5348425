"""Stage ledger and optional JSON run manifest."""

import json
import os
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pteroprovision.models import StageResult


class ManifestService:
    """Collects a StageResult per stage and, when configured, mirrors it to JSON."""

    def __init__(self, logger, manifest_file: Optional[str] = None):
        self.manifest_file = manifest_file
        self.logger = logger
        self.results: List[StageResult] = []
        self.manifest: Dict[str, Any] = {
            "run_id": None,
            "status": "running",
            "started_at": None,
            "finished_at": None,
            "duration_seconds": None,
            "metadata": {},
            "stages": [],
            "error": None,
        }

    def start_run(self, run_id: str, metadata: Dict[str, Any]):
        self.manifest["run_id"] = run_id
        self.manifest["status"] = "running"
        self.manifest["started_at"] = self._now()
        self.manifest["metadata"] = metadata
        self.write()

    def stage_started(self, name: str):
        self.manifest["stages"].append(
            {
                "name": name,
                "status": "running",
                "started_at": self._now(),
                "finished_at": None,
                "duration_seconds": None,
                "detail": None,
            }
        )
        self.write()

    def stage_finished(self, result: StageResult):
        self.results.append(result)
        for stage in reversed(self.manifest["stages"]):
            if stage["name"] == result.name and stage["status"] == "running":
                stage["status"] = result.status
                stage["detail"] = result.detail
                stage["finished_at"] = self._now()
                started_at = datetime.fromisoformat(stage["started_at"])
                finished_at = datetime.fromisoformat(stage["finished_at"])
                stage["duration_seconds"] = (finished_at - started_at).total_seconds()
                break
        else:
            self.manifest["stages"].append(
                {"name": result.name, "status": result.status, "detail": result.detail}
            )
        self.write()

    def result_for(self, name: str) -> Optional[StageResult]:
        for result in reversed(self.results):
            if result.name == name:
                return result
        return None

    def finalize(self, status: str, error: Optional[str] = None):
        self.manifest["status"] = status
        self.manifest["finished_at"] = self._now()
        if self.manifest.get("started_at"):
            started_at = datetime.fromisoformat(self.manifest["started_at"])
            finished_at = datetime.fromisoformat(self.manifest["finished_at"])
            self.manifest["duration_seconds"] = (finished_at - started_at).total_seconds()
        self.manifest["error"] = error
        self.write()

    def write(self):
        if not self.manifest_file:
            return

        directory = os.path.dirname(self.manifest_file) or "."
        fd, temp_path = None, None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(prefix="run-manifest-", suffix=".json", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(self.manifest, file_obj, indent=2, sort_keys=True)
                file_obj.write("\n")
            os.replace(temp_path, self.manifest_file)
        except OSError as exc:
            self.logger.warning("Could not write manifest file '%s': %s", self.manifest_file, exc)
            if temp_path and os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    pass

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
