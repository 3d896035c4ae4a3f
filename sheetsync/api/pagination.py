from __future__ import annotations

import math
from collections.abc import Callable
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from ..services.progress import ProgressTracker

"""Sequential page loader for the paginated v1 endpoints."""

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "PaginatedCollection",
]

T = TypeVar("T")
K = TypeVar("K")

DEFAULT_PAGE_SIZE = 1000


class PaginatedCollection(Generic[T]):
    """Loads pages ``1..n`` from ``factory(page_number, page_size)``.

    Without ``get_count`` pages are requested until one comes back short or
    empty. With it exactly ``ceil(count / page_size)`` pages are requested.
    """

    def __init__(
        self,
        factory: Callable[[int, int], list[T]],
        page_size: int = DEFAULT_PAGE_SIZE,
        get_count: Callable[[], int] | None = None,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.factory = factory
        self.page_size = page_size
        self.get_count = get_count
        self._tracker: ProgressTracker | None = None
        self._group: str | None = None

    def track(self, tracker: ProgressTracker, group: str) -> PaginatedCollection[T]:
        """Report page progress under ``group`` of ``tracker``."""
        self._tracker = tracker
        self._group = group
        return self

    def all(self) -> list[T]:
        """Every row of every page (held in memory)."""
        return self._run(lambda rows: rows)

    def map(self, fn: Callable[[T], K]) -> list[K]:
        """Apply ``fn`` to each row as its page arrives."""
        return self._run(lambda rows: [fn(r) for r in rows])

    def _run(self, handle: Callable[[list[T]], list[K]]) -> list[K]:
        out: list[K] = []
        if self.get_count is not None:
            pages = math.ceil(self.get_count() / self.page_size)
            for page in range(1, pages + 1):
                out.extend(handle(self.factory(page, self.page_size)))
                self._report(page * 100 // pages, f"Loaded page {page} of {pages}")
        else:
            page = 1
            while True:
                section = self.factory(page, self.page_size)
                out.extend(handle(section))
                if len(section) < self.page_size:
                    break
                self._report(None, f"Loaded page {page}")
                page += 1
        self._report(100, None)
        return out

    def _report(self, percent: int | None, message: str | None) -> None:
        if self._tracker is None or self._group is None:
            return
        if percent is None:
            # 総数不明: 件数メッセージのみ更新
            self._tracker.report_quietly(self._group, self._tracker.progress_of(self._group), message)
            return
        self._tracker.report(self._group, percent, message)
