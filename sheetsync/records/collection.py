from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from typing import overload

from .record import Record

"""Ordered, identity-unique collection of Records.

The filters used throughout the engine (``changes``, ``only_present``,
``deletions``, ``for_sheet``) live here as plain methods; each returns a new
collection and never reorders.
"""

__all__ = [
    "RecordCollection",
]


class RecordCollection:
    def __init__(self, records: Iterable[Record] | None = None) -> None:
        self._items: list[Record] = []
        self._ids: set[int] = set()
        for record in records or ():
            self.push(record)

    def push(self, record: Record) -> RecordCollection:
        # 同一インスタンスは一度だけ保持
        if id(record) not in self._ids:
            self._ids.add(id(record))
            self._items.append(record)
        return self

    def filter(self, predicate: Callable[[Record], bool]) -> RecordCollection:
        return RecordCollection(r for r in self._items if predicate(r))

    def changes(self) -> RecordCollection:
        """Records with pending edits, errors or a deletion mark."""
        return self.filter(lambda r: r.is_dirty())

    def only_present(self) -> RecordCollection:
        return self.filter(lambda r: not r.is_deleted())

    def deletions(self) -> RecordCollection:
        return self.filter(lambda r: r.is_deleted())

    def for_sheet(self, slug_or_id: str) -> RecordCollection:
        return self.filter(lambda r: slug_or_id in (r.slug, r.sheet_id))

    def each(self, callback: Callable[[Record], object]) -> RecordCollection:
        for record in self._items:
            callback(record)
        return self

    def count(self) -> int:
        return len(self._items)

    def all(self) -> list[Record]:
        return list(self._items)

    def first(self) -> Record | None:
        return self._items[0] if self._items else None

    def __iter__(self) -> Iterator[Record]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    @overload
    def __getitem__(self, index: int) -> Record: ...

    @overload
    def __getitem__(self, index: slice) -> RecordCollection: ...

    def __getitem__(self, index: int | slice) -> Record | RecordCollection:
        if isinstance(index, slice):
            return RecordCollection(self._items[index])
        return self._items[index]

    def __repr__(self) -> str:
        return f"RecordCollection(count={len(self._items)})"
