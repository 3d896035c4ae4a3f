from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..models.job_run import JobOutcome
from .transport import PlatformClient

"""Job lifecycle endpoints (ack / complete / fail / get)."""

__all__ = [
    "ack_job",
    "complete_job",
    "fail_job",
    "get_job",
]

JOB_PATH = "/v1/jobs/:jobId"


def ack_job(client: PlatformClient, job_id: str, info: str | None = None, progress: int | None = None) -> Any:
    """Acknowledge a job, optionally with progress. Failures are logged, never raised."""
    body: dict[str, Any] = {}
    if info is not None:
        body["info"] = info
    if progress is not None:
        body["progress"] = progress
    return client.post(f"{JOB_PATH}/ack", [job_id], json_body=body, can_miss=True)


def _outcome_body(outcome: JobOutcome | Mapping[str, Any] | None) -> dict[str, Any]:
    if outcome is None:
        return {}
    if isinstance(outcome, JobOutcome):
        return {"outcome": outcome.to_payload()}
    return {"outcome": dict(outcome)}


def complete_job(client: PlatformClient, job_id: str, outcome: JobOutcome | Mapping[str, Any] | None = None) -> Any:
    return client.post(f"{JOB_PATH}/complete", [job_id], json_body=_outcome_body(outcome))


def fail_job(client: PlatformClient, job_id: str, outcome: JobOutcome | Mapping[str, Any] | None = None) -> Any:
    return client.post(f"{JOB_PATH}/fail", [job_id], json_body=_outcome_body(outcome))


def get_job(client: PlatformClient, job_id: str) -> dict[str, Any]:
    return client.get(JOB_PATH, [job_id]) or {}
