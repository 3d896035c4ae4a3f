from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

"""Job lifecycle models: context, outcome, status and run record.

The platform drives every job through ack -> execute -> complete | fail.
``JobRun`` is what ``services.job_worker.run_job`` hands back once a job has
reached a terminal state.
"""

__all__ = [
    "JobContext",
    "JobOutcome",
    "JobRun",
    "JobStatus",
]


class JobStatus(Enum):
    """Status of a job within this process.

    State transitions: pending -> acknowledged -> (completed | failed)
    """
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class JobOutcome:
    """Outcome reported to the platform on complete or fail."""
    message: str
    heading: str | None = None
    acknowledge: bool = False

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message}
        if self.heading is not None:
            payload["heading"] = self.heading
        if self.acknowledge:
            payload["acknowledge"] = True
        return payload

    @staticmethod
    def from_payload(payload: Mapping[str, Any]) -> JobOutcome:
        return JobOutcome(
            message=str(payload.get("message", "")),
            heading=payload.get("heading"),
            acknowledge=bool(payload.get("acknowledge", False)),
        )


@dataclass(frozen=True)
class JobContext:
    """Event context a job was triggered with."""
    job_id: str
    action: str
    account_id: str | None = None
    environment_id: str | None = None
    space_id: str | None = None
    workbook_id: str | None = None
    sheet_id: str | None = None
    input: Mapping[str, Any] = field(default_factory=dict)
    subject_params: Mapping[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_event(event: Mapping[str, Any]) -> JobContext:
        """Build a context from a platform event (``{"context": {...}, "payload": {...}}``)."""
        ctx = event.get("context") or {}
        payload = event.get("payload") or {}
        job_name = str(payload.get("job") or payload.get("operation") or "")
        # "sheet:dedupe" -> action "dedupe" (scope は registry 側で解決)
        action = job_name.split(":", 1)[-1] if job_name else str(payload.get("action", ""))
        subject = payload.get("subject") or {}
        return JobContext(
            job_id=str(ctx.get("jobId", "")),
            action=action,
            account_id=ctx.get("accountId"),
            environment_id=ctx.get("environmentId"),
            space_id=ctx.get("spaceId"),
            workbook_id=ctx.get("workbookId"),
            sheet_id=ctx.get("sheetId"),
            input=payload.get("input") or {},
            subject_params=subject.get("params") or {},
        )


@dataclass(frozen=True)
class JobRun:
    """Terminal record of one job execution in this process."""
    context: JobContext
    status: JobStatus = JobStatus.PENDING
    start_time: datetime | None = None
    end_time: datetime | None = None
    outcome: JobOutcome | None = None
    error: str | None = None  # 失敗理由の要約

    @property
    def elapsed_seconds(self) -> float:
        if self.start_time is None or self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()
