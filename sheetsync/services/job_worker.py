from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from ..api.jobs import ack_job, complete_job, fail_job
from ..api.records import stream_records
from ..api.sheets import KnownSheet, get_sheet
from ..api.transport import PlatformClient
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.config_models import AppConfig
from ..models.job_run import JobContext, JobOutcome, JobRun, JobStatus
from ..records.collection import RecordCollection
from .progress import ProgressTracker

"""Job lifecycle: acknowledge, execute a registered worker, complete or fail.

Workers are plain classes registered under ``"<scope>:<action>"`` in a
``WorkerRegistry``. ``run_job`` drives one job through

    pending -> acknowledged -> completed | failed

A ``JobError`` carries the outcome shown to the user verbatim; any other
exception is reported as a generic acknowledged "Error" outcome. Failures
are appended to the error log when one is given.
"""

__all__ = [
    "ColumnJobWorker",
    "JobError",
    "JobWorker",
    "SheetJobWorker",
    "WorkbookJobWorker",
    "WorkerRegistry",
    "run_job",
]

logger = logging.getLogger(__name__)


class JobError(Exception):
    """Failure with a user-facing outcome.

    A plain message becomes ``heading="Error", acknowledge=True``.
    """

    def __init__(self, message: str | JobOutcome) -> None:
        if isinstance(message, JobOutcome):
            self.outcome = message
        else:
            self.outcome = JobOutcome(message=message, heading="Error", acknowledge=True)
        super().__init__(self.outcome.message)


class JobWorker:
    """Base worker. Subclasses implement ``execute``."""

    def __init__(
        self,
        client: PlatformClient,
        context: JobContext,
        job: Mapping[str, Any] | None = None,
        config: AppConfig | None = None,
    ) -> None:
        self.client = client
        self.context = context
        self.job: Mapping[str, Any] = job or {}
        self.config = config
        self.progress = ProgressTracker(client, context.job_id, description=context.action or "Job")

    @property
    def id(self) -> str:
        return str(self.job.get("id") or self.context.job_id)

    @property
    def input(self) -> Mapping[str, Any]:
        return self.job.get("input") or self.context.input

    @property
    def account_id(self) -> str | None:
        return self.context.account_id

    @property
    def environment_id(self) -> str | None:
        return self.context.environment_id

    @property
    def space_id(self) -> str | None:
        return self.context.space_id

    def execute(self) -> JobOutcome | None:
        return None

    def on_error(self, error: Exception) -> None:
        """Hook called before the job is failed. No-op by default."""


class WorkbookJobWorker(JobWorker):
    @property
    def workbook_id(self) -> str:
        if not self.context.workbook_id:
            raise JobError("Workbook ID not found")
        return self.context.workbook_id


class SheetJobWorker(WorkbookJobWorker):
    @property
    def sheet_id(self) -> str:
        if not self.context.sheet_id:
            raise JobError("Sheet ID not found")
        return self.context.sheet_id

    def sheet(self) -> KnownSheet:
        page_size = self.config.records.sheet_page_size if self.config else 2000
        return get_sheet(self.client, self.sheet_id, page_size=page_size)

    def records(self) -> RecordCollection:
        return stream_records(self.client, sheet_id=self.sheet_id)


class ColumnJobWorker(SheetJobWorker):
    @property
    def column_key(self) -> str:
        key = self.context.subject_params.get("columnKey")
        if key:
            return str(key)
        raise JobError("No columnKey available in a column job")


class WorkerRegistry:
    """Explicit ``"<scope>:<action>" -> worker class`` table."""

    def __init__(self) -> None:
        self._workers: dict[str, type[JobWorker]] = {}

    def register(self, action: str, worker_cls: type[JobWorker], scope: str = "*") -> None:
        key = f"{scope}:{action}"
        if key in self._workers:
            raise ValueError(f"worker already registered for '{key}'")
        self._workers[key] = worker_cls

    def resolve(self, action: str, scope: str = "*") -> type[JobWorker] | None:
        """Exact ``scope:action`` first, then the wildcard scope.

        ``action`` may itself be qualified (``"sheet:dedupe"``).
        """
        if ":" in action:
            scope, action = action.split(":", 1)
        return self._workers.get(f"{scope}:{action}") or self._workers.get(f"*:{action}")

    def actions(self) -> list[str]:
        return sorted(self._workers)

    def __contains__(self, action: str) -> bool:
        return self.resolve(action) is not None


def run_job(
    client: PlatformClient,
    registry: WorkerRegistry,
    context: JobContext,
    error_log: ErrorLogBuffer | None = None,
    config: AppConfig | None = None,
) -> JobRun:
    """Run one job to a terminal state.

    Raises:
        LookupError: no worker is registered for ``context.action`` (the job
            is left untouched on the platform)
    """
    worker_cls = registry.resolve(context.action)
    if worker_cls is None:
        raise LookupError(f"no worker registered for action '{context.action}'")

    start_time = datetime.now(UTC)
    job = ack_job(client, context.job_id)
    logger.info(f"job {context.job_id} acknowledged (action={context.action})")
    worker = worker_cls(client, context, job if isinstance(job, Mapping) else None, config)

    try:
        outcome = worker.execute()
        complete_job(client, context.job_id, outcome)
    except Exception as e:
        try:
            worker.on_error(e)
        except Exception:
            logger.exception(f"on_error hook failed for job {context.job_id}")

        if isinstance(e, JobError):
            failure = e.outcome
        else:
            logger.exception(f"job {context.job_id} crashed")
            failure = JobOutcome(message=str(e), heading="Error", acknowledge=True)
        fail_job(client, context.job_id, failure)
        logger.error(f"job {context.job_id} failed: {failure.message}")

        if error_log is not None:
            error_log.append(
                ErrorRecord.create(
                    job_id=context.job_id,
                    sheet_id=context.sheet_id,
                    action=context.action,
                    error_type=type(e).__name__,
                    message=failure.message,
                )
            )
        return JobRun(
            context=context,
            status=JobStatus.FAILED,
            start_time=start_time,
            end_time=datetime.now(UTC),
            outcome=failure,
            error=str(e),
        )
    finally:
        worker.progress.close()

    logger.info(f"job {context.job_id} completed" + (f": {outcome.message}" if outcome else ""))
    return JobRun(
        context=context,
        status=JobStatus.COMPLETED,
        start_time=start_time,
        end_time=datetime.now(UTC),
        outcome=outcome,
    )
