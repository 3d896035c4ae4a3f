from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from ..api.records import DEFAULT_WRITE_BATCH_SIZE, write_records
from ..models.config_models import SheetConfig
from ..models.job_run import JobOutcome
from ..models.merge_result import MergeResult
from ..models.transfer_stats import TransferStatsAccumulator
from ..records.collection import RecordCollection
from ..records.record import Record
from .job_worker import SheetJobWorker
from .progress import track_progress

"""Duplicate detection and merging over a record collection.

Records are grouped by ``hash(keys)``. The first record of a group is the
base; a later record with the same hash is merged into the first base it
does not conflict with (first non-empty value wins) and soft-deleted. A
record that conflicts with every base of its group becomes a new base and
is reported as conflicting. Rows whose hashed fields are all empty are never
grouped.
"""

__all__ = [
    "DedupeWorker",
    "FieldRef",
    "merge_records",
    "normalize_field_refs",
    "prepare_merge",
]

logger = logging.getLogger(__name__)

FieldRef = str | Mapping[str, Any]


def normalize_field_refs(refs: str | Sequence[FieldRef] | None) -> list[str] | None:
    """``"a"`` / ``["a", "b"]`` / ``[{"key": "a"}, field]`` -> key list; empty -> None."""
    if not refs:
        return None
    if isinstance(refs, str):
        return [refs]
    keys: list[str] = []
    for ref in refs:
        if isinstance(ref, str):
            keys.append(ref)
        elif isinstance(ref, Mapping):
            keys.append(str(ref["key"]))
        else:
            keys.append(str(ref.key))
    return keys


def merge_records(records: Iterable[Record], keys: str | Sequence[FieldRef] | None = None) -> MergeResult:
    """Merge duplicates of ``records`` in place, in input order.

    Parameters
    ----------
    records: records to scan; merged bases are edited and duplicates deleted
    keys: fields forming the duplicate key; None hashes each record over
        its own data keys
    """
    ordered = list(records)
    hash_keys = normalize_field_refs(keys)

    uniques: dict[str, list[str]] = {}
    result: dict[str, Record] = {}
    deletions: list[str] = []
    # dict を順序付き集合として使う
    updates: dict[str, None] = {}
    conflicts: list[Record] = []

    for record in ordered:
        record_hash = record.hash(*hash_keys) if hash_keys else record.hash()
        record_id = str(record.id)

        if not record_hash:
            result[record_id] = record
        elif record_hash in uniques:
            bases = uniques[record_hash]
            for base_id in bases:
                base = result[base_id]
                if not base.has_conflict(record):
                    base.merge(record)
                    deletions.append(record_id)
                    record.delete()
                    updates[base_id] = None
                    break
            else:
                result[record_id] = record
                bases.append(record_id)
                conflicts.append(record)
        else:
            uniques[record_hash] = [record_id]
            result[record_id] = record

    return MergeResult(
        duplicate_records=deletions,
        merged_records=[result[i] for i in updates],
        conflicting_records=conflicts,
        pristine_records=[r for r in ordered if not r.is_dirty()],
        first_record_of_each_hash=[result[ids[0]] for ids in uniques.values()],
    )


def prepare_merge(
    sheet: SheetConfig,
    records: Iterable[Record],
    override_keys: str | Sequence[FieldRef] | None = None,
) -> MergeResult:
    """Merge using ``override_keys`` if given, else the sheet's dedupe fields."""
    keys = override_keys or sheet.dedupe_field_keys()
    return merge_records(records, keys or None)


class DedupeWorker(SheetJobWorker):
    """Merges duplicate rows of the job's sheet and writes the result back."""

    def override_keys(self) -> tuple[str, ...]:
        if self.config is None:
            return ("email",)
        return self.config.dedupe.override_keys

    def write_batch_size(self) -> int:
        if self.config is None:
            return DEFAULT_WRITE_BATCH_SIZE
        return self.config.records.write_batch_size

    def execute(self) -> JobOutcome | None:
        records: RecordCollection = track_progress(
            self.progress, "Loading records", self.records, size="m"
        )
        sheet = self.sheet()

        result = track_progress(
            self.progress,
            "Merging duplicates",
            lambda: prepare_merge(sheet.config, records, self.override_keys()),
        )
        logger.info(
            f"sheet {self.sheet_id}: {len(result.duplicate_records)} duplicates, "
            f"{len(result.merged_records)} merged, {len(result.conflicting_records)} conflicts"
        )

        if not result.has_duplicates:
            return JobOutcome(message="No duplicates found")

        if records.changes():
            stats = TransferStatsAccumulator()
            track_progress(
                self.progress,
                "Writing records",
                lambda: write_records(
                    self.client,
                    records,
                    sheet_id=self.sheet_id,
                    snapshot=True,
                    metrics_callback=stats.add,
                    batch_size=self.write_batch_size(),
                ),
                size="m",
            )
            total, avg, p95 = stats.get_stats()
            logger.info(f"write requests={total} rows={stats.rows} avg_sec={avg:.3f} p95_sec={p95:.3f}")

        return JobOutcome(message=f"Successfully merged {result.merged_count} records.")
