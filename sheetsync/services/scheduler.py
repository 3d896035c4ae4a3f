from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any

"""Interval scheduler emitting periodic ``cron:<name>`` events.

Each named job is a daemon ``threading.Timer`` that re-arms itself after
every tick. Starting a name that is already running is a no-op.
"""

__all__ = [
    "CRON_TOPICS",
    "JobScheduler",
]

logger = logging.getLogger(__name__)

CRON_TOPICS: dict[str, float] = {
    "5-minutes": 300.0,
    "hourly": 3600.0,
    "daily": 86400.0,
}


class JobScheduler:
    def __init__(self) -> None:
        self._timers: dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    @property
    def running(self) -> list[str]:
        with self._lock:
            return sorted(self._timers)

    def start(self, name: str, interval_seconds: float, callback: Callable[[], Any]) -> bool:
        """Start ``callback`` every ``interval_seconds``; False if ``name`` already runs."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        with self._lock:
            if name in self._timers:
                return False
            self._arm(name, interval_seconds, callback)
        logger.info(f"scheduled '{name}' every {interval_seconds:g}s")
        return True

    def start_all(
        self,
        emit: Callable[[dict[str, Any]], Any],
        topics: Mapping[str, float] = CRON_TOPICS,
        context: Mapping[str, Any] | None = None,
    ) -> list[str]:
        """Start every topic not yet running; returns the names started."""
        started = []
        for name, interval in topics.items():
            event = {"topic": f"cron:{name}", "payload": {}, "domain": "cron", "context": dict(context or {})}
            if self.start(name, interval, lambda event=event: emit(event)):
                started.append(name)
        if started:
            logger.info(f"started cron jobs: {', '.join(started)}")
        return started

    def stop(self, name: str) -> bool:
        with self._lock:
            timer = self._timers.pop(name, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def stop_all(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def _arm(self, name: str, interval: float, callback: Callable[[], Any]) -> None:
        # _lock 保持中に呼ぶこと
        timer = threading.Timer(interval, self._tick, args=(name, interval, callback))
        timer.daemon = True
        self._timers[name] = timer
        timer.start()

    def _tick(self, name: str, interval: float, callback: Callable[[], Any]) -> None:
        try:
            callback()
        except Exception:
            logger.exception(f"scheduled job '{name}' failed")
        with self._lock:
            # stop() 済みなら再登録しない
            if name in self._timers:
                self._arm(name, interval, callback)
