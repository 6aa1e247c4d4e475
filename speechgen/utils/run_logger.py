"""Utilities for keeping per-run generation logs."""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Any

from ..types import BatchSnapshot
from .files import ensure_dir, write_json


class RunLogger:
    """Persists page scripts and batch reports under ``runs/<run_id>``."""

    def __init__(self, base_dir: str | Path = "runs") -> None:
        self._base_dir = ensure_dir(base_dir)

    def run_dir(self, run_id: str) -> Path:
        return ensure_dir(self._base_dir / run_id)

    def page_path(self, run_id: str, page_index: int) -> Path:
        """Return the JSON path used for one page's record."""
        return self.run_dir(run_id) / f"page-{page_index + 1:03d}.json"

    def log_page(self, run_id: str, page_index: int, record: dict[str, Any]) -> Path:
        """Persist the generated script (and any follow-up artefacts) for a page."""
        return write_json(self.page_path(run_id, page_index), {"page_index": page_index, **record})

    def log_report(self, run_id: str, snapshot: BatchSnapshot, extra: dict[str, Any] | None = None) -> Path:
        """Persist the final batch state."""
        report = {
            "status": snapshot.status.value,
            "completed_count": snapshot.completed_count,
            "total_count": snapshot.total_count,
            "generated_pages": sorted(snapshot.results),
            "page_errors": [asdict(error) for error in snapshot.page_errors],
            "usage": asdict(snapshot.usage_summary) if snapshot.usage_summary else None,
            "cost": asdict(snapshot.cost_summary) if snapshot.cost_summary else None,
            "error_message": snapshot.error_message,
        }
        if extra:
            report.update(extra)
        return write_json(self.run_dir(run_id) / "report.json", report)
