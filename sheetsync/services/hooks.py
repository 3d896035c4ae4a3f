from __future__ import annotations

import logging
from collections.abc import Callable

from ..api.records import DEFAULT_WRITE_BATCH_SIZE, write_records
from ..models.job_run import JobOutcome
from ..records.collection import RecordCollection
from ..records.record import Record
from .job_worker import SheetJobWorker
from .progress import track_progress

"""Bulk record hooks: computed fields applied per sheet slug.

A hook receives every record of one sheet and edits them in place (usually
through ``Record.compute``). Only records left dirty are written back.
"""

__all__ = [
    "BulkRecordHook",
    "ComputeWorker",
    "HookRegistry",
    "PATIENT_EMAIL_MESSAGE",
    "build_hooks",
    "patient_email",
]

logger = logging.getLogger(__name__)

BulkRecordHook = Callable[[list[Record]], None]

PATIENT_EMAIL_MESSAGE = "Email was generated from first and last name."


def patient_email(records: list[Record]) -> None:
    """``email`` = firstName + lastName + ``@gmail.com``."""
    for record in records:
        record.compute(
            "email",
            lambda _, r: f"{r.def_string('firstName')}{r.def_string('lastName')}@gmail.com",
            PATIENT_EMAIL_MESSAGE,
        )


class HookRegistry:
    """``sheet slug -> [hook, ...]``, applied in registration order."""

    def __init__(self) -> None:
        self._hooks: dict[str, list[BulkRecordHook]] = {}

    def register(self, slug: str, hook: BulkRecordHook) -> None:
        self._hooks.setdefault(slug, []).append(hook)

    def slugs(self) -> list[str]:
        return sorted(self._hooks)

    def apply(self, slug: str | None, records: RecordCollection) -> int:
        """Run the hooks of ``slug`` over ``records``; returns how many became dirty."""
        hooks = self._hooks.get(slug or "", [])
        if not hooks:
            return 0
        batch = records.only_present().all()
        for hook in hooks:
            hook(batch)
        return sum(1 for r in batch if r.is_dirty())


def build_hooks() -> HookRegistry:
    hooks = HookRegistry()
    hooks.register("patients", patient_email)
    return hooks


class ComputeWorker(SheetJobWorker):
    """Runs the bulk record hooks of the job's sheet and writes the edits back."""

    def hooks(self) -> HookRegistry:
        return build_hooks()

    def execute(self) -> JobOutcome | None:
        records: RecordCollection = track_progress(
            self.progress, "Loading records", self.records, size="m"
        )
        sheet = self.sheet()
        changed = track_progress(
            self.progress, "Computing fields", lambda: self.hooks().apply(sheet.slug, records)
        )
        logger.info(f"sheet {self.sheet_id} ({sheet.slug}): {changed} of {len(records)} records computed")
        if not changed:
            return JobOutcome(message="No computed fields changed")

        batch_size = self.config.records.write_batch_size if self.config else DEFAULT_WRITE_BATCH_SIZE
        track_progress(
            self.progress,
            "Writing records",
            lambda: write_records(self.client, records, sheet_id=self.sheet_id, batch_size=batch_size),
            size="m",
        )
        return JobOutcome(message=f"Computed fields on {changed} records.")
