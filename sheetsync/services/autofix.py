from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from ..api.records import WriteResult, write_raw
from ..api.sheets import get_sheet
from ..api.transport import PlatformClient
from ..models.job_run import JobOutcome
from ..records.casting import as_date
from ..records.record import ID_KEY
from .job_worker import SheetJobWorker
from .progress import ProgressTracker

"""Per-field value fixups applied across a whole sheet.

Each fixup maps an old value to a new one. Only rows where at least one
value actually changed are written, as ``{"__k": id, field: new}`` through
the raw (gzip) records upsert in snapshot mode.
"""

__all__ = [
    "AutofixWorker",
    "FixupCallback",
    "autofix",
    "collect_fixes",
    "fix_date_format",
]

logger = logging.getLogger(__name__)

FixupCallback = Callable[[Any], Any]


def fix_date_format(value: Any) -> Any:
    """Normalize a parseable date to ``YYYY-MM-DD``; anything else is returned as is."""
    parsed = as_date(value)
    if parsed is None:
        return value
    return parsed.strftime("%Y-%m-%d")


def collect_fixes(rows: Iterable[Mapping[str, Any]], fixups: Mapping[str, FixupCallback]) -> list[dict[str, Any]]:
    """Rows (simple dicts with ``id``) -> minimal update rows for changed values."""
    updates: list[dict[str, Any]] = []
    for row in rows:
        update: dict[str, Any] = {ID_KEY: row.get("id")}
        changed = False
        for key, callback in fixups.items():
            if key not in row:
                continue
            new_value = callback(row[key])
            if new_value != row[key]:
                update[key] = new_value
                changed = True
        if changed:
            updates.append(update)
    return updates


def autofix(
    client: PlatformClient,
    sheet_id: str,
    fixups: Mapping[str, FixupCallback],
    page_size: int = 2000,
    tracker: ProgressTracker | None = None,
) -> WriteResult:
    pages = get_sheet(client, sheet_id, page_size=page_size).get_all_records()
    if tracker is not None:
        pages.track(tracker.add("Loading records", "m"), "Loading records")
    rows = pages.all()
    updates = collect_fixes(rows, fixups)
    logger.info(f"autofix sheet {sheet_id}: {len(updates)} of {len(rows)} rows changed")
    if not updates:
        return WriteResult(skipped=True)
    return write_raw(client, updates, sheet_id=sheet_id, snapshot=True)


class AutofixWorker(SheetJobWorker):
    """Reformats configured date fields of the job's sheet."""

    def fixups(self) -> dict[str, FixupCallback]:
        date_fields = self.config.autofix.date_fields if self.config else ()
        return {key: fix_date_format for key in date_fields}

    def execute(self) -> JobOutcome | None:
        fixups = self.fixups()
        if not fixups:
            return JobOutcome(message="No fixups configured")
        page_size = self.config.records.sheet_page_size if self.config else 2000
        result = autofix(self.client, self.sheet_id, fixups, page_size=page_size, tracker=self.progress)
        return JobOutcome(message=f"Fixed {result.lines} records.")
