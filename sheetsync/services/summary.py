from __future__ import annotations

from ..models.merge_result import MergeResult

"""SUMMARY line rendering for dedupe runs."""

__all__ = [
    "render_summary_line",
]


def render_summary_line(action: str, result: MergeResult, total_records: int | None = None) -> str:
    """Render the SUMMARY line for one merge pass.

    Format:
    SUMMARY action={action} records={n} duplicates={d} merged={m}
    conflicts={c} pristine={p}

    ``records`` falls back to duplicates + merged + pristine when not given.

    Examples:
        >>> render_summary_line("dedupe", MergeResult(), total_records=3)
        'SUMMARY action=dedupe records=3 duplicates=0 merged=0 conflicts=0 pristine=0'
    """
    if total_records is None:
        total_records = (
            len(result.duplicate_records) + len(result.merged_records) + len(result.pristine_records)
        )
    return (
        f"SUMMARY action={action} "
        f"records={total_records} "
        f"duplicates={len(result.duplicate_records)} "
        f"merged={len(result.merged_records)} "
        f"conflicts={len(result.conflicting_records)} "
        f"pristine={len(result.pristine_records)}"
    )
