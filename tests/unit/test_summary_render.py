from __future__ import annotations

from sheetsync.models.merge_result import MergeResult
from sheetsync.records.record import Record
from sheetsync.services.summary import render_summary_line


def test_render_summary_line_counts():
    merged = Record({"__k": "r1"})
    result = MergeResult(
        duplicate_records=["r2", "r3"],
        merged_records=[merged],
        conflicting_records=[Record({"__k": "r4"})],
        pristine_records=[Record({"__k": "r4"}), Record({"__k": "r5"})],
    )
    line = render_summary_line("dedupe", result, total_records=5)
    assert line == "SUMMARY action=dedupe records=5 duplicates=2 merged=1 conflicts=1 pristine=2"


def test_render_summary_line_default_total():
    result = MergeResult(duplicate_records=["r2"], merged_records=[Record({"__k": "r1"})])
    assert render_summary_line("dedupe", result).startswith("SUMMARY action=dedupe records=2 ")


def test_render_empty_result():
    line = render_summary_line("dedupe", MergeResult(), total_records=0)
    assert line == "SUMMARY action=dedupe records=0 duplicates=0 merged=0 conflicts=0 pristine=0"
