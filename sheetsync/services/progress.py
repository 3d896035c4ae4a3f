from __future__ import annotations

import math
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..api.jobs import ack_job
from ..api.transport import PlatformClient

"""Weighted job progress reported to the platform through job acks.

A job is split into named modules, each with a size weight (s=20, m=40,
l=80). Overall progress is the weighted mean of module progress, rounded up.
When stdout is a TTY a single tqdm bar mirrors the reported percentage
locally; in non-TTY environments (CI, containers) no bar is created.
"""

__all__ = [
    "ProgressSize",
    "ProgressTracker",
    "SIZE_WEIGHTS",
    "is_tty_enabled",
    "track_progress",
]

ProgressSize = Literal["s", "m", "l"]

SIZE_WEIGHTS: dict[str, int] = {"s": 20, "m": 40, "l": 80}

MESSAGE_SEPARATOR = " • "
DEFAULT_MESSAGE = "Processing..."

R = TypeVar("R")


def is_tty_enabled() -> bool:
    """True if stdout is a TTY and a progress bar should be displayed."""
    return sys.stdout.isatty()


@dataclass
class _Module:
    size: str
    progress: int = 0
    message: str | None = None


class ProgressTracker:
    """Progress of one job, split into weighted modules.

    Args:
        client: platform client used for acks (None: local only)
        job_id: job to acknowledge progress on
    """

    def __init__(self, client: PlatformClient | None, job_id: str, *, description: str = "Job") -> None:
        self.client = client
        self.job_id = job_id
        self.modules: dict[str, _Module] = {}
        self.last_message: str | None = None

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=100,
                desc=description,
                unit="%",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def add(self, name: str, size: ProgressSize = "m") -> ProgressTracker:
        """Register a module; an existing module keeps its size and progress."""
        if name not in self.modules:
            self.modules[name] = _Module(size=size)
        return self

    def progress_of(self, name: str) -> int:
        module = self.modules.get(name)
        return module.progress if module else 0

    def report_quietly(self, name: str, percent: int = 100, message: str | None = None) -> None:
        """Update a module without sending an ack."""
        if name not in self.modules:
            self.add(name, "m")
        message = message or name
        module = self.modules[name]
        module.progress = percent
        module.message = message
        self.last_message = message
        self._refresh_bar()

    def report(self, name: str, percent: int = 100, message: str | None = None) -> None:
        self.report_quietly(name, percent, message)
        self.send()

    def complete(self, name: str, message: str | None = None) -> None:
        self.report(name, 100, message or f"Completed {name}")

    @property
    def status(self) -> tuple[int, list[str]]:
        """(overall percent, messages of modules still in flight)"""
        total = 0
        done = 0.0
        messages: list[str] = []
        for module in self.modules.values():
            weight = SIZE_WEIGHTS.get(module.size, SIZE_WEIGHTS["m"])
            total += weight
            done += module.progress / 100 * weight
            if 0 < module.progress < 100 and module.message:
                messages.append(module.message)
        if not total:
            return (0, messages)
        return (math.ceil(done / total * 100), messages)

    def info(self) -> str:
        _, messages = self.status
        return MESSAGE_SEPARATOR.join(messages) or self.last_message or DEFAULT_MESSAGE

    def send(self) -> None:
        """Ack the job with the current info and percentage."""
        if self.client is None:
            return
        progress, _ = self.status
        ack_job(self.client, self.job_id, info=self.info(), progress=progress)

    def _refresh_bar(self) -> None:
        if self.pbar is None:
            return
        progress, _ = self.status
        self.pbar.n = progress
        self.pbar.set_description(self.info()[:40])
        self.pbar.refresh()

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


def track_progress(
    tracker: ProgressTracker,
    group: str,
    fn: Callable[[], R],
    size: ProgressSize = "s",
    message: str | None = None,
) -> R:
    """Run ``fn`` as module ``group``: 5% before, 100% (quietly) after."""
    tracker.add(group, size)
    tracker.report(group, 5, message)
    result = fn()
    tracker.report_quietly(group, 100, message)
    return result
