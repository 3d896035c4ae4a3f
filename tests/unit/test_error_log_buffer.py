from __future__ import annotations
import json
import re
from pathlib import Path
from sheetsync.logging.error_log import ErrorRecord, ErrorLogBuffer

KEYS = {"timestamp", "job_id", "sheet_id", "action", "error_type", "message"}


def test_error_record_creation_and_json_line():
    rec = ErrorRecord.create(
        job_id="j1",
        sheet_id="s1",
        action="dedupe",
        error_type="RuntimeError",
        message="boom",
    )
    data = json.loads(rec.to_json_line())
    assert data["job_id"] == "j1"
    assert data["sheet_id"] == "s1"
    assert data["action"] == "dedupe"
    assert data["error_type"] == "RuntimeError"
    assert data["message"] == "boom"
    assert "timestamp" in data and data["timestamp"].endswith("Z")
    assert set(data.keys()) == KEYS


def test_error_log_buffer_flush(temp_workdir: Path):
    buf = ErrorLogBuffer()
    buf.append(ErrorRecord.create("j1", "s1", "dedupe", "RuntimeError", "boom"))
    buf.append(ErrorRecord.create("j2", None, "auto-fix", "JobError", "Sheet ID not found"))
    path = buf.flush()
    assert path.exists()
    assert re.fullmatch(r"errors-\d{8}-\d{6}\.log", path.name)
    # ファイル内容検証
    lines = path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2
    for raw in lines:
        assert set(json.loads(raw).keys()) == KEYS
    # flush 後バッファクリア
    assert len(buf) == 0


def test_error_log_buffer_empty_flush(temp_workdir: Path):
    buf = ErrorLogBuffer(temp_workdir / "nested" / "logs")
    assert buf.flush() is None
    assert not (temp_workdir / "nested").exists()


def test_error_log_buffer_multiple_flushes(temp_workdir: Path):
    buf = ErrorLogBuffer()
    buf.append(ErrorRecord.create("j1", "s1", "dedupe", "RuntimeError", "boom"))
    path = buf.flush()
    size1 = path.stat().st_size
    # 再追加して再flush
    buf.append(ErrorRecord.create("j2", "s1", "dedupe", "RuntimeError", "boom2"))
    path2 = buf.flush()
    assert path == path2
    assert path2.stat().st_size > size1
