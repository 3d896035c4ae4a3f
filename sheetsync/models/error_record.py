from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the failed-job JSON Lines log.

One line per failed job. The key set is fixed: consumers of the log rely on
exactly these six keys being present, nothing more.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        job_id: platform job id ("" when the job could not be identified)
        sheet_id: sheet the job targeted, "" for workbook/space level jobs
        action: registered action name, e.g. "dedupe"
        error_type: exception class name or an UPPER_SNAKE classification
        message: outcome message reported to the platform
    """
    timestamp: str  # ISO8601 UTC
    job_id: str
    sheet_id: str
    action: str
    error_type: str
    message: str

    @staticmethod
    def create(job_id: str, sheet_id: str | None, action: str, error_type: str, message: str) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            job_id=job_id,
            sheet_id=sheet_id or "",
            action=action,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
