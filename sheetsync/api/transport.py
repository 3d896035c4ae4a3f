from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import requests

from ..models.config_models import ApiConfig
from .errors import RateError, RecoverableError, RequestError, RequestTimeoutError, RetryError, error_for_status

"""HTTP transport for the platform API.

``PlatformClient`` wraps a ``requests.Session`` with bearer auth, path
parameter substitution, status classification and capped exponential
backoff. Only requests that opt in (``retry=True``; reads default to it) are
retried, and only for recoverable errors.
"""

__all__ = [
    "PlatformClient",
    "QueryValue",
]

logger = logging.getLogger(__name__)

QueryValue = str | int | float | bool | Sequence[str] | None


class PlatformClient:
    """Thin, retrying client over the platform REST API."""

    def __init__(
        self,
        config: ApiConfig,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        self._sleep = sleep

    # -- url building ---------------------------------------------------

    @staticmethod
    def build_path(path: str, params: Sequence[str] = ()) -> str:
        """Substitute ``:name`` segments with ``params`` in order."""
        remaining = list(params)
        segments = []
        for segment in path.split("/"):
            if segment.startswith(":"):
                if not remaining:
                    raise ValueError(f"missing path parameter {segment} for {path}")
                segments.append(str(remaining.pop(0)))
            else:
                segments.append(segment)
        return "/".join(segments)

    @staticmethod
    def build_query(query: Mapping[str, QueryValue] | None) -> list[tuple[str, str]]:
        pairs: list[tuple[str, str]] = []
        for key, value in (query or {}).items():
            if value is None:
                continue
            if isinstance(value, (list, tuple)):
                pairs.extend((key, str(v)) for v in value)
            elif isinstance(value, bool):
                pairs.append((key, "true" if value else "false"))
            else:
                pairs.append((key, str(value)))
        return pairs

    def build_url(self, path: str, params: Sequence[str] = ()) -> str:
        return f"{self.config.base_url}{self.build_path(path, params)}"

    # -- requests -------------------------------------------------------

    def get(self, path: str, params: Sequence[str] = (), **kwargs: Any) -> Any:
        kwargs.setdefault("retry", True)
        return self.request("GET", path, params, **kwargs)

    def post(self, path: str, params: Sequence[str] = (), **kwargs: Any) -> Any:
        return self.request("POST", path, params, **kwargs)

    def patch(self, path: str, params: Sequence[str] = (), **kwargs: Any) -> Any:
        return self.request("PATCH", path, params, **kwargs)

    def request(
        self,
        method: str,
        path: str,
        params: Sequence[str] = (),
        *,
        query: Mapping[str, QueryValue] | None = None,
        json_body: Any = None,
        data: str | bytes | None = None,
        headers: Mapping[str, str] | None = None,
        raw: bool = False,
        retry: bool = False,
        can_miss: bool = False,
    ) -> Any:
        """Send a request and return the parsed body.

        Parameters
        ----------
        raw: return the response text instead of decoded JSON
        retry: retry recoverable failures with capped exponential backoff
        can_miss: log and swallow any failure (returns None); for
            fire-and-forget calls such as progress acks
        """
        url = self.build_url(path, params)
        try:
            response = self._send_with_retry(method, url, query, json_body, data, headers, raw, retry)
        except RequestError as e:
            if can_miss:
                logger.warning(f"ignored failed request {method} {url}: {e}")
                return None
            raise
        return self._parse_body(response, raw)

    def _send_with_retry(
        self,
        method: str,
        url: str,
        query: Mapping[str, QueryValue] | None,
        json_body: Any,
        data: str | bytes | None,
        headers: Mapping[str, str] | None,
        raw: bool,
        retry: bool,
    ) -> requests.Response:
        attempts = 0
        delay = 0.0
        while True:
            if delay:
                self._sleep(delay)
            attempts += 1
            try:
                return self._send(method, url, query, json_body, data, headers, raw)
            except RecoverableError as e:
                if not retry:
                    raise
                if attempts >= self.config.max_attempts:
                    raise RetryError(e, attempts) from e
                delay = self._next_delay(delay, e)
                logger.debug(f"retrying {method} {url} in {delay:.2f}s (attempt {attempts}): {e}")

    def _next_delay(self, previous: float, error: RecoverableError) -> float:
        delay = previous * 2 if previous else self.config.retry_delay
        if isinstance(error, RateError):
            delay = max(delay, error.recover_in())
        return min(delay, self.config.retry_max_delay)

    def _send(
        self,
        method: str,
        url: str,
        query: Mapping[str, QueryValue] | None,
        json_body: Any,
        data: str | bytes | None,
        headers: Mapping[str, str] | None,
        raw: bool,
    ) -> requests.Response:
        merged_headers = {"Authorization": f"Bearer {self.config.token or ''}"}
        if not raw:
            merged_headers["Content-Type"] = "application/json"
        if headers:
            merged_headers.update(headers)
        body = data
        if json_body is not None:
            body = json.dumps(json_body)

        started = time.perf_counter()
        try:
            response = self.session.request(
                method,
                url,
                params=self.build_query(query),
                data=body,
                headers=merged_headers,
                timeout=self.config.timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            logger.debug(f"http {method} {url} status=0 elapsed_ms={_elapsed_ms(started)}")
            raise RequestTimeoutError(method, url, None, str(e)) from e
        logger.debug(f"http {method} {url} status={response.status_code} elapsed_ms={_elapsed_ms(started)}")

        if response.status_code >= 300:
            error = error_for_status(
                method,
                url,
                response.status_code,
                response.text or "",
                retry_after=_retry_after(response),
            )
            if error is not None:
                raise error
        return response

    @staticmethod
    def _parse_body(response: requests.Response, raw: bool) -> Any:
        if raw:
            return response.text
        if not response.content:
            return None
        try:
            body = response.json()
        except ValueError:
            # 不正な JSON はボディなし扱い
            return None
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body


def _retry_after(response: requests.Response) -> float | None:
    value = response.headers.get("Retry-After") if response.headers else None
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
