from __future__ import annotations

import json
from pathlib import Path

import jsonschema
import pytest

from sheetsync.logging.error_log import ErrorLogBuffer
from sheetsync.models.error_record import ErrorRecord

"""Error log JSON schema contract test (one JSON object per failed job)."""

ERROR_LOG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "required": ["timestamp", "job_id", "sheet_id", "action", "error_type", "message"],
    "properties": {
        "timestamp": {"type": "string", "pattern": r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?Z$"},
        "job_id": {"type": "string"},
        "sheet_id": {"type": "string"},
        "action": {"type": "string"},
        "error_type": {"type": "string", "minLength": 1},
        "message": {"type": "string"},
    },
}


def test_error_log_schema_valid_example():
    record = {
        "timestamp": "2025-09-26T10:12:33Z",
        "job_id": "us_jb_123",
        "sheet_id": "us_sh_456",
        "action": "dedupe",
        "error_type": "RequestError",
        "message": "Request failed: POST https://api.test/v2-alpha/records.jsonl (status 500)",
    }
    jsonschema.validate(record, ERROR_LOG_SCHEMA)


def test_error_log_schema_rejects_extra_key():
    record = {
        "timestamp": "2025-09-26T10:12:33Z",
        "job_id": "us_jb_123",
        "sheet_id": "",
        "action": "dedupe",
        "error_type": "JobError",
        "message": "Sheet ID not found",
        "extra": "not allowed",
    }
    with pytest.raises(jsonschema.exceptions.ValidationError):
        jsonschema.validate(record, ERROR_LOG_SCHEMA)


def test_flushed_lines_match_schema(temp_workdir: Path):
    buf = ErrorLogBuffer()
    buf.append(ErrorRecord.create("j1", "s1", "dedupe", "RuntimeError", "boom"))
    buf.append(ErrorRecord.create("j2", None, "auto-fix", "JobError", "Sheet ID not found"))
    path = buf.flush()
    for raw in path.read_text(encoding="utf-8").splitlines():
        jsonschema.validate(json.loads(raw), ERROR_LOG_SCHEMA)
