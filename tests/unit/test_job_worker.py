from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from sheetsync.logging.error_log import ErrorLogBuffer
from sheetsync.models.job_run import JobContext, JobOutcome, JobStatus
from sheetsync.services.job_worker import (
    ColumnJobWorker,
    JobError,
    JobWorker,
    SheetJobWorker,
    WorkerRegistry,
    run_job,
)


class OkWorker(JobWorker):
    def execute(self):
        return JobOutcome(message="all good")


class SilentWorker(JobWorker):
    pass


class StructuredFailWorker(JobWorker):
    def execute(self):
        raise JobError(JobOutcome(message="Pick a sheet", heading="Oops", acknowledge=False))


class CrashWorker(JobWorker):
    hook_calls: list[Exception] = []

    def execute(self):
        raise RuntimeError("boom")

    def on_error(self, error):
        CrashWorker.hook_calls.append(error)
        raise ValueError("hook also broke")


def _ctx(action: str = "ok", **kwargs) -> JobContext:
    return JobContext(job_id="j1", action=action, **kwargs)


def _registry() -> WorkerRegistry:
    reg = WorkerRegistry()
    reg.register("ok", OkWorker)
    reg.register("silent", SilentWorker)
    reg.register("structured", StructuredFailWorker)
    reg.register("crash", CrashWorker)
    return reg


@pytest.fixture()
def job_routes(fake_session):
    fake_session.add("POST", "/v1/jobs/j1/ack", json_body={"data": {"id": "j1"}})
    fake_session.add("POST", "/v1/jobs/j1/complete", json_body={"data": {}})
    fake_session.add("POST", "/v1/jobs/j1/fail", json_body={"data": {}})
    return fake_session


def _body(session, path: str) -> dict:
    calls = session.calls_to("POST", path)
    assert len(calls) == 1
    return json.loads(calls[0]["data"])


class TestRegistry:
    def test_resolve_exact_scope_then_wildcard(self):
        reg = WorkerRegistry()
        reg.register("dedupe", OkWorker)
        reg.register("dedupe", SilentWorker, scope="sheet")
        assert reg.resolve("dedupe", scope="sheet") is SilentWorker
        assert reg.resolve("sheet:dedupe") is SilentWorker
        assert reg.resolve("workbook:dedupe") is OkWorker
        assert reg.resolve("dedupe") is OkWorker
        assert reg.resolve("unknown") is None

    def test_duplicate_registration_raises(self):
        reg = WorkerRegistry()
        reg.register("dedupe", OkWorker)
        with pytest.raises(ValueError):
            reg.register("dedupe", SilentWorker)

    def test_actions_and_contains(self):
        reg = _registry()
        assert "*:ok" in reg.actions()
        assert "ok" in reg
        assert "nope" not in reg


class TestJobError:
    def test_string_message_becomes_error_outcome(self):
        err = JobError("bad input")
        assert err.outcome == JobOutcome(message="bad input", heading="Error", acknowledge=True)
        assert str(err) == "bad input"

    def test_outcome_passes_through(self):
        outcome = JobOutcome(message="m", heading="H")
        assert JobError(outcome).outcome is outcome


class TestRunJob:
    def test_success_completes_with_outcome(self, client, job_routes):
        run = run_job(client, _registry(), _ctx("ok"))
        assert run.status is JobStatus.COMPLETED
        assert run.outcome.message == "all good"
        assert _body(job_routes, "/v1/jobs/j1/complete") == {"outcome": {"message": "all good"}}
        assert job_routes.calls_to("POST", "/v1/jobs/j1/fail") == []
        assert run.elapsed_seconds >= 0

    def test_no_outcome_completes_with_empty_body(self, client, job_routes):
        run = run_job(client, _registry(), _ctx("silent"))
        assert run.status is JobStatus.COMPLETED and run.outcome is None
        assert _body(job_routes, "/v1/jobs/j1/complete") == {}

    def test_job_error_outcome_is_sent_verbatim(self, client, job_routes):
        run = run_job(client, _registry(), _ctx("structured"))
        assert run.status is JobStatus.FAILED
        assert _body(job_routes, "/v1/jobs/j1/fail") == {"outcome": {"message": "Pick a sheet", "heading": "Oops"}}

    def test_generic_error_and_failing_hook(self, client, job_routes, temp_workdir: Path):
        CrashWorker.hook_calls.clear()
        error_log = ErrorLogBuffer(temp_workdir / "logs")

        run = run_job(client, _registry(), _ctx("crash", sheet_id="s1"), error_log=error_log)

        assert run.status is JobStatus.FAILED
        assert run.error == "boom"
        assert len(CrashWorker.hook_calls) == 1
        assert _body(job_routes, "/v1/jobs/j1/fail") == {
            "outcome": {"message": "boom", "heading": "Error", "acknowledge": True}
        }
        path = error_log.flush()
        record = json.loads(path.read_text(encoding="utf-8").strip())
        assert record["job_id"] == "j1"
        assert record["sheet_id"] == "s1"
        assert record["action"] == "crash"
        assert record["error_type"] == "RuntimeError"
        assert record["message"] == "boom"

    def test_ack_comes_first(self, client, job_routes):
        run_job(client, _registry(), _ctx("ok"))
        assert job_routes.calls[0]["path"] == "/v1/jobs/j1/ack"

    def test_unknown_action_raises_without_calls(self, client, fake_session):
        with pytest.raises(LookupError):
            run_job(client, _registry(), _ctx("nope"))
        assert fake_session.calls == []

    def test_ack_failure_does_not_stop_job(self, client, fake_session):
        fake_session.add("POST", "/v1/jobs/j1/ack", status=500)
        fake_session.add("POST", "/v1/jobs/j1/complete", json_body={"data": {}})
        run = run_job(client, _registry(), _ctx("ok"))
        assert run.status is JobStatus.COMPLETED

    def test_progress_bar_closed(self, client, job_routes):
        with patch("sheetsync.services.job_worker.ProgressTracker") as tracker_cls:
            run_job(client, _registry(), _ctx("ok"))
        tracker_cls.return_value.close.assert_called_once()


class TestWorkerProperties:
    def test_sheet_id_required(self, client):
        worker = SheetJobWorker(client, _ctx())
        with pytest.raises(JobError) as e:
            _ = worker.sheet_id
        assert e.value.outcome.message == "Sheet ID not found"

    def test_workbook_id_required(self, client):
        with pytest.raises(JobError):
            _ = SheetJobWorker(client, _ctx()).workbook_id

    def test_column_key_from_subject_params(self, client):
        worker = ColumnJobWorker(client, _ctx(sheet_id="s1", subject_params={"columnKey": "email"}))
        assert worker.column_key == "email"
        with pytest.raises(JobError):
            _ = ColumnJobWorker(client, _ctx()).column_key

    def test_id_and_input_prefer_job_payload(self, client):
        worker = JobWorker(client, _ctx(input={"a": 1}), job={"id": "jx", "input": {"b": 2}})
        assert worker.id == "jx"
        assert worker.input == {"b": 2}
        bare = JobWorker(client, _ctx(input={"a": 1}))
        assert bare.id == "j1" and bare.input == {"a": 1}
