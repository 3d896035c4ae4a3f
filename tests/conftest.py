# Shared pytest fixtures
from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Any
from unittest.mock import Mock

import pytest
import requests

from sheetsync.api.transport import PlatformClient
from sheetsync.models.config_models import ApiConfig

BASE_URL = "https://api.test"


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(
        self,
        status_code: int = 200,
        text: str = "",
        json_body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        if json_body is not None:
            text = json.dumps(json_body)
        self.status_code = status_code
        self.text = text
        self.content = text.encode("utf-8")
        self.headers = headers or {}

    def json(self) -> Any:
        return json.loads(self.text)


class FakeSession:
    """Routes ``(method, path)`` to queued responses and records every call.

    The last queued response for a route is reused once the queue drains;
    unknown routes answer 404.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[FakeResponse | Exception]] = {}
        self.calls: list[dict[str, Any]] = []

    def add(self, method: str, path: str, status: int = 200, json_body: Any = None, text: str = "",
            headers: dict[str, str] | None = None) -> FakeSession:
        self.routes.setdefault((method, path), []).append(FakeResponse(status, text, json_body, headers))
        return self

    def add_error(self, method: str, path: str, error: Exception) -> FakeSession:
        self.routes.setdefault((method, path), []).append(error)
        return self

    def add_jsonl(self, method: str, path: str, rows: list[dict[str, Any]]) -> FakeSession:
        return self.add(method, path, text="".join(json.dumps(r) + "\n" for r in rows))

    def request(self, method: str, url: str, params: Any = None, data: Any = None,
                headers: dict[str, str] | None = None, timeout: float | None = None) -> FakeResponse:
        path = url[len(BASE_URL):]
        self.calls.append({
            "method": method,
            "path": path,
            "params": list(params or []),
            "data": data,
            "headers": dict(headers or {}),
            "timeout": timeout,
        })
        queue = self.routes.get((method, path))
        if not queue:
            return FakeResponse(404, "not found")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def calls_to(self, method: str, path: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["method"] == method and c["path"] == path]


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return f"""api:
  base_url: {BASE_URL}
  token_env: SHEETSYNC_API_KEY
  max_attempts: 3
  retry_delay: 0.5
  retry_max_delay: 2
records:
  page_size: 1000
  sheet_page_size: 2000
  write_batch_size: 1000
dedupe:
  override_keys: [email]
autofix:
  date_fields: [dob]
error_log_dir: ./logs
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "sheetsync.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def api_config() -> ApiConfig:
    return ApiConfig(
        base_url=BASE_URL,
        token="test-token",
        max_attempts=3,
        retry_delay=0.5,
        retry_max_delay=2.0,
    )


@pytest.fixture()
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture()
def sleep_mock() -> Mock:
    return Mock()


@pytest.fixture()
def client(api_config: ApiConfig, fake_session: FakeSession, sleep_mock: Mock) -> PlatformClient:
    return PlatformClient(api_config, session=fake_session, sleep=sleep_mock)  # type: ignore[arg-type]


@pytest.fixture()
def connection_error() -> requests.ConnectionError:
    return requests.ConnectionError("connection refused")
