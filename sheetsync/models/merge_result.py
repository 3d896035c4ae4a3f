from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..records.record import Record

"""Result model for one dedupe/merge pass.

Transient: produced by ``services.dedupe.merge_records`` and consumed by the
dedupe job and the SUMMARY line. Nothing here is persisted.
"""

__all__ = [
    "MergeResult",
]


@dataclass(frozen=True)
class MergeResult:
    """Outcome of grouping a collection by hash and merging duplicates.

    Attributes:
        duplicate_records: ids of records absorbed into another (now soft-deleted)
        merged_records: canonical records that absorbed at least one duplicate
        conflicting_records: same hash as an earlier record but a conflicting
            field, left untouched for manual review
        pristine_records: records the pass did not modify (not dirty)
        first_record_of_each_hash: one representative per distinct hash
    """
    duplicate_records: list[str] = field(default_factory=list)
    merged_records: list[Record] = field(default_factory=list)
    conflicting_records: list[Record] = field(default_factory=list)
    pristine_records: list[Record] = field(default_factory=list)
    first_record_of_each_hash: list[Record] = field(default_factory=list)

    @property
    def has_duplicates(self) -> bool:
        return bool(self.duplicate_records) or bool(self.merged_records)

    @property
    def merged_count(self) -> int:
        return max(len(self.duplicate_records), len(self.merged_records))
