from __future__ import annotations

import gzip
import json
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ..models.transfer_stats import TransferMetrics
from ..records.collection import RecordCollection
from ..records.record import ID_KEY, METADATA_KEY, Record, is_reserved
from .transport import PlatformClient

"""Records endpoints: JSONL stream read/write plus the v1 paginated API.

Stream write modes:
- truncate / snapshot: every present record is sent in full (``to_json``)
- incremental (default): only ``changeset()`` of dirty records is sent;
  temporary records that were deleted before ever being saved are dropped

Lines are POSTed in chunks of ``batch_size``. Each chunk's records are
committed once the chunk is accepted and stop being dirty, except soft-deleted
records: commit keeps their deletion marker pending, so they are sent again
until the collection drops them. An incremental write with nothing to send
raises EmptyChangesetError before any request.
"""

__all__ = [
    "DEFAULT_WRITE_BATCH_SIZE",
    "EmptyChangesetError",
    "STREAM_PATH",
    "StreamParseError",
    "WriteResult",
    "create_records",
    "format_record",
    "get_record_counts",
    "get_records",
    "parse_json_lines",
    "serialize_records",
    "simple_stream_records",
    "stream_records",
    "to_simple_record",
    "write_raw",
    "write_records",
]

logger = logging.getLogger(__name__)

STREAM_PATH = "/v2-alpha/records.jsonl"
SHEET_RECORDS_PATH = "/v1/sheets/:sheetId/records"
SHEET_COUNTS_PATH = "/v1/sheets/:sheetId/counts"

JSONL_ACCEPT = {"Accept": "application/jsonl"}
JSONL_CONTENT = {"Content-Type": "application/jsonl"}

DEFAULT_WRITE_BATCH_SIZE = 1000


class StreamParseError(Exception):
    """A records stream line was not valid JSON."""

    def __init__(self, line_number: int, detail: str) -> None:
        super().__init__(f"invalid JSON on line {line_number}: {detail}")
        self.line_number = line_number


class EmptyChangesetError(Exception):
    """Incremental write requested for a collection without changes."""

    def __init__(self) -> None:
        super().__init__("No changes made to this collection that would need to be written.")


@dataclass(frozen=True)
class WriteResult:
    lines: int = 0
    payload_bytes: int = 0
    skipped: bool = False


# ---------------------------------------------------------------------------
# stream read
# ---------------------------------------------------------------------------

def parse_json_lines(body: str | None) -> list[dict[str, Any]]:
    """Parse a JSONL body, skipping blank lines."""
    rows: list[dict[str, Any]] = []
    for line_number, line in enumerate((body or "").splitlines(), start=1):
        if not line.strip():
            continue
        try:
            rows.append(json.loads(line))
        except json.JSONDecodeError as e:
            raise StreamParseError(line_number, e.msg) from e
    return rows


def _stream_query(sheet_id: str | None, workbook_id: str | None, query: Mapping[str, Any]) -> dict[str, Any]:
    if sheet_id is None and workbook_id is None:
        raise ValueError("either sheet_id or workbook_id is required")
    return {"sheetId": sheet_id, "workbookId": workbook_id, **query, "stream": True}


def stream_records(
    client: PlatformClient,
    sheet_id: str | None = None,
    workbook_id: str | None = None,
    **query: Any,
) -> RecordCollection:
    """Load every row of a sheet (or workbook) as clean Records."""
    body = client.get(
        STREAM_PATH,
        query=_stream_query(sheet_id, workbook_id, query),
        headers=JSONL_ACCEPT,
        raw=True,
    )
    return RecordCollection(Record(row) for row in parse_json_lines(body))


def simple_stream_records(
    client: PlatformClient,
    sheet_id: str | None = None,
    workbook_id: str | None = None,
    **query: Any,
) -> list[dict[str, Any]]:
    """Like ``stream_records`` but returns plain dicts with ``id``/``metadata``."""
    body = client.get(
        STREAM_PATH,
        query=_stream_query(sheet_id, workbook_id, query),
        headers=JSONL_ACCEPT,
        raw=True,
    )
    out = []
    for row in parse_json_lines(body):
        simple: dict[str, Any] = {}
        for key, value in row.items():
            if key == ID_KEY:
                simple["id"] = value
            elif key == METADATA_KEY:
                simple["metadata"] = value
            elif not is_reserved(key):
                simple[key] = value
        out.append(simple)
    return out


# ---------------------------------------------------------------------------
# stream write
# ---------------------------------------------------------------------------

def _to_line(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


def _payloads(records: RecordCollection, truncate: bool) -> list[tuple[Record, dict[str, Any]]]:
    if truncate:
        return [(r, r.to_json()) for r in records.only_present()]

    updates = records.filter(lambda r: not (r.is_temporary and r.is_deleted())).changes()
    if not updates:
        raise EmptyChangesetError()
    return [(r, r.changeset()) for r in updates]


def serialize_records(records: RecordCollection, truncate: bool = False) -> str:
    """Build the JSONL write body for ``records``.

    Raises:
        EmptyChangesetError: incremental mode with nothing to send
    """
    return "".join(_to_line(payload) + "\n" for _, payload in _payloads(records, truncate))


def write_records(
    client: PlatformClient,
    records: RecordCollection,
    sheet_id: str | None = None,
    workbook_id: str | None = None,
    truncate: bool = False,
    snapshot: bool = False,
    silent: bool = False,
    metrics_callback: Callable[[TransferMetrics], None] | None = None,
    batch_size: int = DEFAULT_WRITE_BATCH_SIZE,
) -> WriteResult:
    """Write a collection back through the records stream.

    The lines are POSTed in chunks of at most ``batch_size``, in collection
    order. Records of a chunk are committed once that chunk is accepted, so a
    failure part way leaves the unsent records dirty.

    Parameters
    ----------
    truncate: replace the sheet contents with the present records
    snapshot: ask the platform to snapshot the sheet before applying
    silent: suppress the platform's downstream record hooks
    metrics_callback: receives TransferMetrics for every POST
    batch_size: maximum number of lines per POST

    Raises:
        EmptyChangesetError: incremental mode with nothing to send (no request is made)
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1 (got {batch_size})")

    pairs = _payloads(records, truncate)
    # truncate は空でも 1 回送ってシートを空にする
    chunks = [pairs[i : i + batch_size] for i in range(0, len(pairs), batch_size)] or [[]]

    total_lines = 0
    total_bytes = 0
    for index, chunk in enumerate(chunks):
        first = index == 0
        query = {
            "sheetId": sheet_id,
            "workbookId": workbook_id,
            # 2 チャンク目以降に truncate を付けると先行チャンクが消える
            "truncate": (truncate and first) or None,
            "snapshot": (snapshot and first) or None,
            "silent": silent or None,
            "stream": True,
        }
        encoded = "".join(_to_line(payload) + "\n" for _, payload in chunk).encode("utf-8")

        start_time = time.time()
        try:
            client.post(STREAM_PATH, query=query, data=encoded, headers=JSONL_CONTENT, raw=True)
        finally:
            end_time = time.time()
            if metrics_callback is not None:
                metrics_callback(
                    TransferMetrics(
                        rows=len(chunk),
                        payload_bytes=len(encoded),
                        elapsed_seconds=end_time - start_time,
                        start_time=start_time,
                        end_time=end_time,
                    )
                )

        for record, _ in chunk:
            record.commit()
        total_lines += len(chunk)
        total_bytes += len(encoded)
        logger.debug(f"wrote chunk {index + 1}/{len(chunks)}: {len(chunk)} record lines ({len(encoded)} bytes)")

    return WriteResult(lines=total_lines, payload_bytes=total_bytes)


def write_raw(
    client: PlatformClient,
    rows: Iterable[Mapping[str, Any]],
    sheet_id: str | None = None,
    workbook_id: str | None = None,
    truncate: bool = False,
    snapshot: bool = False,
    silent: bool = False,
) -> WriteResult:
    """Upsert already flattened rows (``__k`` plus fields), gzip compressed."""
    rows_list = list(rows)
    body = "".join(_to_line(r) + "\n" for r in rows_list)
    compressed = gzip.compress(body.encode("utf-8"))
    client.post(
        STREAM_PATH,
        query={
            "sheetId": sheet_id,
            "workbookId": workbook_id,
            "truncate": truncate or None,
            "snapshot": snapshot or None,
            "silent": silent or None,
            "stream": True,
        },
        data=compressed,
        headers={**JSONL_CONTENT, "Content-Encoding": "gzip"},
        raw=True,
    )
    return WriteResult(lines=len(rows_list), payload_bytes=len(compressed))


# ---------------------------------------------------------------------------
# v1 records API
# ---------------------------------------------------------------------------

def to_simple_record(row: Mapping[str, Any]) -> dict[str, Any]:
    """``{"id": .., "values": {k: {"value": v}}}`` -> ``{k: v, "id": ..}``"""
    simple = {key: cell.get("value") for key, cell in (row.get("values") or {}).items()}
    simple["id"] = row.get("id")
    return simple


def format_record(row: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """``{k: v}`` -> ``{k: {"value": v}}``, dropping ``id`` and ``metadata``."""
    return {key: {"value": value} for key, value in row.items() if key not in ("id", "metadata")}


def get_records(
    client: PlatformClient,
    sheet_id: str,
    page_number: int = 1,
    page_size: int = 1000,
    **query: Any,
) -> list[dict[str, Any]]:
    body = client.get(
        SHEET_RECORDS_PATH,
        [sheet_id],
        query={**query, "pageNumber": page_number, "pageSize": page_size},
    )
    return [to_simple_record(r) for r in (body or {}).get("records", [])]


def get_record_counts(client: PlatformClient, sheet_id: str, **query: Any) -> dict[str, int]:
    body = client.get(SHEET_COUNTS_PATH, [sheet_id], query=query)
    return dict((body or {}).get("counts", {}))


def create_records(client: PlatformClient, sheet_id: str, rows: Iterable[Mapping[str, Any]]) -> Any:
    return client.post(SHEET_RECORDS_PATH, [sheet_id], json_body=[format_record(r) for r in rows])
