"""Smoke run report generation service."""

import json
import os
import tempfile
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ReportService:
    """Collects per-variation results and step timings, and writes them as JSON.

    Variations may run on worker threads, so every mutation holds ``_lock``.
    Nothing is written when ``report_file`` is ``None``.
    """

    def __init__(self, report_file: Optional[str], logger):
        self.report_file = report_file
        self.logger = logger
        self._lock = threading.Lock()
        self.report: Dict[str, Any] = {
            "status": "running",
            "started_at": None,
            "finished_at": None,
            "duration_seconds": None,
            "host_environment": {},
            "runs": {},
        }

    def start(self, host_environment: Dict[str, Any]):
        with self._lock:
            self.report["status"] = "running"
            self.report["started_at"] = self._now()
            self.report["host_environment"] = host_environment
            self._write()

    def run_started(self, run_id: str, variation_id: str, base_url: str):
        with self._lock:
            self.report["runs"][run_id] = {
                "variation": variation_id,
                "base_url": base_url,
                "status": "running",
                "started_at": self._now(),
                "finished_at": None,
                "steps": [],
                "result": None,
            }
            self._write()

    def step_started(self, run_id: str, step_name: str):
        with self._lock:
            self.report["runs"][run_id]["steps"].append(
                {
                    "name": step_name,
                    "status": "running",
                    "started_at": self._now(),
                    "finished_at": None,
                    "duration_seconds": None,
                    "error": None,
                }
            )
            self._write()

    def step_finished(self, run_id: str, step_name: str, status: str, error: Optional[str] = None):
        with self._lock:
            for step in reversed(self.report["runs"][run_id]["steps"]):
                if step["name"] == step_name and step["status"] == "running":
                    step["status"] = status
                    step["finished_at"] = self._now()
                    step["error"] = error
                    started_at = datetime.fromisoformat(step["started_at"])
                    finished_at = datetime.fromisoformat(step["finished_at"])
                    step["duration_seconds"] = (finished_at - started_at).total_seconds()
                    break
            self._write()

    def run_finished(self, run_id: str, result: Dict[str, Any]):
        with self._lock:
            run = self.report["runs"].setdefault(
                run_id,
                {
                    "variation": result.get("variation"),
                    "base_url": result.get("base_url"),
                    "started_at": None,
                    "steps": [],
                },
            )
            run["status"] = result["status"]
            run["finished_at"] = self._now()
            run["result"] = result
            self._write()

    def finalize(self, status: str):
        with self._lock:
            self.report["status"] = status
            self.report["finished_at"] = self._now()
            if self.report.get("started_at"):
                started_at = datetime.fromisoformat(self.report["started_at"])
                finished_at = datetime.fromisoformat(self.report["finished_at"])
                self.report["duration_seconds"] = (finished_at - started_at).total_seconds()
            self._write()

    def _write(self):
        if not self.report_file:
            return

        os.makedirs(os.path.dirname(self.report_file) or ".", exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            prefix="smoke-report-",
            suffix=".json",
            dir=os.path.dirname(os.path.abspath(self.report_file)),
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(self.report, file_obj, indent=2, sort_keys=True)
                file_obj.write("\n")
            os.replace(temp_path, self.report_file)
        except OSError as exc:
            self.logger.warning("Could not write report file '%s': %s", self.report_file, exc)
            try:
                os.remove(temp_path)
            except OSError:
                pass

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
