from __future__ import annotations

import json
from pathlib import Path

import pytest

from sheetsync.api.records import STREAM_PATH
from sheetsync.cli.__main__ import build_registry
from sheetsync.logging.error_log import ErrorLogBuffer
from sheetsync.models.config_models import ApiConfig, AppConfig, DedupeConfig
from sheetsync.models.job_run import JobContext, JobStatus
from sheetsync.services.job_worker import run_job

"""End-to-end dedupe job against a faked platform API.

ack -> stream records -> fetch sheet -> merge -> write -> complete
"""

SHEET = {
    "data": {
        "id": "us_sh_1",
        "config": {
            "name": "Contacts",
            "slug": "contacts",
            "fields": [
                {"key": "email", "metadata": {"is_dedupe_field": True}},
                {"key": "name"},
                {"key": "phone"},
            ],
        },
    }
}

ROWS = [
    {"__k": "r1", "__s": "us_sh_1", "email": "a@x.com", "name": "Ann", "phone": ""},
    {"__k": "r2", "__s": "us_sh_1", "email": "a@x.com", "name": "", "phone": "555"},
    {"__k": "r3", "__s": "us_sh_1", "email": "a@x.com", "name": "Bob", "phone": ""},
    {"__k": "r4", "__s": "us_sh_1", "email": "", "name": "Nobody"},
    {"__k": "r5", "__s": "us_sh_1", "email": "", "name": "Nobody"},
    {"__k": "r6", "__s": "us_sh_1", "email": "c@x.com", "name": "Cy"},
]


@pytest.fixture()
def platform(fake_session):
    fake_session.add("POST", "/v1/jobs/j1/ack", json_body={"data": {"id": "j1"}})
    fake_session.add("POST", "/v1/jobs/j1/complete", json_body={"data": {}})
    fake_session.add("POST", "/v1/jobs/j1/fail", json_body={"data": {}})
    fake_session.add_jsonl("GET", STREAM_PATH, ROWS)
    fake_session.add("GET", "/v1/sheets/us_sh_1", json_body=SHEET)
    fake_session.add("POST", STREAM_PATH, json_body={"success": True})
    return fake_session


def _config(override_keys: tuple[str, ...]) -> AppConfig:
    return AppConfig(api=ApiConfig(base_url="https://api.test", token="t"), dedupe=DedupeConfig(override_keys))


def _written(session) -> list[dict]:
    post = session.calls_to("POST", STREAM_PATH)
    assert len(post) == 1
    return [json.loads(line) for line in post[0]["data"].decode("utf-8").splitlines()]


def test_dedupe_job_uses_sheet_dedupe_fields(client, platform):
    ctx = JobContext(job_id="j1", action="dedupe", sheet_id="us_sh_1")

    run = run_job(client, build_registry(), ctx, config=_config(()))

    assert run.status is JobStatus.COMPLETED
    assert run.outcome.message == "Successfully merged 1 records."

    # r2 は r1 に統合、r3 は name が衝突するので残る、空 email 行は統合しない
    assert _written(platform) == [
        {"phone": "555", "__k": "r1", "__s": "us_sh_1"},
        {"__k": "r2", "__s": "us_sh_1", "__d": True},
    ]

    stream_call = platform.calls_to("GET", STREAM_PATH)[0]
    assert ("sheetId", "us_sh_1") in stream_call["params"]
    assert stream_call["headers"]["Accept"] == "application/jsonl"

    write_call = platform.calls_to("POST", STREAM_PATH)[0]
    assert ("snapshot", "true") in write_call["params"]
    assert write_call["headers"]["Content-Type"] == "application/jsonl"

    complete = json.loads(platform.calls_to("POST", "/v1/jobs/j1/complete")[0]["data"])
    assert complete == {"outcome": {"message": "Successfully merged 1 records."}}


def test_progress_is_acknowledged_between_phases(client, platform):
    run_job(client, build_registry(), JobContext(job_id="j1", action="dedupe", sheet_id="us_sh_1"))

    acks = [json.loads(c["data"]) for c in platform.calls_to("POST", "/v1/jobs/j1/ack")]
    # 最初の ack は run_job 自身、以降は各フェーズの進捗
    assert acks[0] == {}
    phases = acks[1:]
    assert [a["info"] for a in phases] == ["Loading records", "Merging duplicates", "Writing records"]
    assert all(0 < a["progress"] < 100 for a in phases)


def test_override_keys_take_precedence(client, platform):
    ctx = JobContext(job_id="j1", action="dedupe", sheet_id="us_sh_1")

    run = run_job(client, build_registry(), ctx, config=_config(("name",)))

    # name で束ねると r4/r5 (Nobody) が重複になる
    assert run.status is JobStatus.COMPLETED
    written = _written(platform)
    assert {"__k": "r5", "__s": "us_sh_1", "__d": True} in written


def test_no_duplicates_skips_write(client, fake_session):
    fake_session.add("POST", "/v1/jobs/j1/ack", json_body={"data": {}})
    fake_session.add("POST", "/v1/jobs/j1/complete", json_body={"data": {}})
    fake_session.add_jsonl("GET", STREAM_PATH, [ROWS[0], ROWS[5]])
    fake_session.add("GET", "/v1/sheets/us_sh_1", json_body=SHEET)

    run = run_job(client, build_registry(), JobContext(job_id="j1", action="dedupe", sheet_id="us_sh_1"))

    assert run.outcome.message == "No duplicates found"
    assert fake_session.calls_to("POST", STREAM_PATH) == []


def test_write_failure_fails_job_and_logs(client, fake_session, temp_workdir: Path):
    fake_session.add("POST", "/v1/jobs/j1/ack", json_body={"data": {}})
    fake_session.add("POST", "/v1/jobs/j1/fail", json_body={"data": {}})
    fake_session.add_jsonl("GET", STREAM_PATH, ROWS)
    fake_session.add("GET", "/v1/sheets/us_sh_1", json_body=SHEET)
    fake_session.add("POST", STREAM_PATH, status=400, text='{"errors":[{"message":"bad row"}]}')
    error_log = ErrorLogBuffer(temp_workdir / "logs")

    run = run_job(
        client,
        build_registry(),
        JobContext(job_id="j1", action="dedupe", sheet_id="us_sh_1"),
        error_log=error_log,
    )

    assert run.status is JobStatus.FAILED
    fail = json.loads(fake_session.calls_to("POST", "/v1/jobs/j1/fail")[0]["data"])
    assert fail["outcome"]["heading"] == "Error"
    assert "status 400" in fail["outcome"]["message"]
    record = json.loads(error_log.flush().read_text(encoding="utf-8").strip())
    assert record["error_type"] == "PayloadError"
    assert record["sheet_id"] == "us_sh_1"
