"""
Report Storage

File-backed persistence for generated reports: one JSON document per
report, written atomically through a temp file.
"""

import re
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError

from api.schemas.responses import GeneratedReport
from config import get_settings
from core.logging_config import storage_logger as logger


REPORT_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class ReportStore:
    """put / get / list / delete over a directory of JSON files."""

    def __init__(self, base_dir: Optional[Union[str, Path]] = None):
        self.base_dir = Path(base_dir or get_settings().reports_dir)

    def _path(self, report_id: str) -> Optional[Path]:
        # Ids are opaque but never path fragments
        if not REPORT_ID.match(report_id):
            return None
        return self.base_dir / f"{report_id}.json"

    def put(self, report: GeneratedReport) -> None:
        """Save (or overwrite) a report."""
        path = self._path(report.id)
        if path is None:
            raise ValueError(f"Invalid report id: {report.id!r}")

        self.base_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
        tmp_path.replace(path)
        logger.info(f"Saved report {report.id}")

    def get(self, report_id: str) -> Optional[GeneratedReport]:
        """Load a report, or None when missing or unreadable."""
        path = self._path(report_id)
        if path is None or not path.exists():
            return None
        try:
            return GeneratedReport.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, PydanticValidationError) as e:
            logger.warning(f"Could not load report {report_id}: {e}")
            return None

    def list(self) -> list[GeneratedReport]:
        """All readable reports, newest first."""
        if not self.base_dir.exists():
            return []

        reports = []
        for path in self.base_dir.glob("*.json"):
            report = self.get(path.stem)
            if report is not None:
                reports.append(report)

        reports.sort(key=lambda r: r.created_at, reverse=True)
        return reports

    def delete(self, report_id: str) -> bool:
        """Delete a report; False when it did not exist."""
        path = self._path(report_id)
        if path is None or not path.exists():
            return False
        path.unlink()
        logger.info(f"Deleted report {report_id}")
        return True

    def update(self, report_id: str, updates: dict) -> Optional[GeneratedReport]:
        """Merge updates into a stored report; id and created_at are fixed."""
        report = self.get(report_id)
        if report is None:
            return None

        data = report.model_dump()
        data.update({k: v for k, v in updates.items() if k not in ("id", "created_at")})
        updated = GeneratedReport.model_validate(data)
        self.put(updated)
        return updated


# Global store instance
report_store = ReportStore()
