from __future__ import annotations

import json
import uuid
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Any

from .casting import as_bool, as_date, as_nullable_string, as_string, is_present

"""Change-tracking wrapper around one platform row.

A Record holds an immutable base snapshot (what the platform last told us)
plus pending edits, per-field validation messages and a soft-delete flag.
Only ``commit()`` replaces the base snapshot. ``changeset()`` is the minimal
delta written back over the wire; ``to_json()`` is the full effective row.

Reserved keys share the ``__`` prefix and never show up in ``keys()``,
``entries()`` or ``hash()``:

    __k  row id            __s  sheet id        __n  sheet slug
    __i  inline errors     __d  deletion flag   __m  row metadata
"""

__all__ = [
    "DELETED_KEY",
    "ERRORS_KEY",
    "HASH_PROP_DELIM",
    "HASH_VALUE_DELIM",
    "ID_KEY",
    "METADATA_KEY",
    "RESERVED_PREFIX",
    "Record",
    "SHEET_ID_KEY",
    "SLUG_KEY",
    "TEMP_ID_PREFIX",
    "is_reserved",
]

RESERVED_PREFIX = "__"
ID_KEY = "__k"
SHEET_ID_KEY = "__s"
SLUG_KEY = "__n"
ERRORS_KEY = "__i"
DELETED_KEY = "__d"
METADATA_KEY = "__m"

TEMP_ID_PREFIX = "TEMP_"

HASH_VALUE_DELIM = "::"
HASH_PROP_DELIM = "|"


def is_reserved(key: str) -> bool:
    return key.startswith(RESERVED_PREFIX)


def _same(a: Any, b: Any) -> bool:
    # bool と int を区別する (True == 1 を同値扱いしない)
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    return a == b


class Record:
    """Mutable view over a frozen row snapshot.

    Parameters
    ----------
    data: row mapping as parsed from the records stream (reserved keys included)
    dirty: when True the supplied data is treated as pending edits over an
        empty base, used for computed rows that have never been persisted
    """

    def __init__(self, data: Mapping[str, Any] | None = None, dirty: bool = False) -> None:
        self._changes: dict[str, Any] = {}
        # dict をキー順序付き集合として使う (メッセージの出力順を安定させる)
        self._errs: dict[str, dict[str, None]] = {}
        self._deleted = False
        # 未保存の行 (__k 無し) は生成時に一時 id を持つ
        self._temp_id: str | None = None
        if (data or {}).get(ID_KEY) is None:
            self._temp_id = f"{TEMP_ID_PREFIX}{uuid.uuid4()}"
        if dirty:
            self._data: Mapping[str, Any] = MappingProxyType({})
            for key, value in (data or {}).items():
                self.set(key, value)
        else:
            self._data = MappingProxyType(dict(data or {}))

    # -- identity -------------------------------------------------------

    @property
    def data(self) -> Mapping[str, Any]:
        """Read-only base snapshot."""
        return self._data

    @property
    def id(self) -> str:
        return self.get(ID_KEY) or self._temp_id or ""

    @property
    def slug(self) -> str | None:
        return self.get(SLUG_KEY)

    @property
    def sheet_id(self) -> str | None:
        return self.get(SHEET_ID_KEY)

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)

    # -- reads ----------------------------------------------------------

    def get(self, key: str) -> Any:
        if key in self._changes:
            return self._changes[key]
        return self._data.get(key)

    def has(self, key: str) -> bool:
        return is_present(self.get(key))

    def has_any(self, *keys: str) -> bool:
        return any(self.has(k) for k in keys)

    def has_all(self, *keys: str) -> bool:
        return all(self.has(k) for k in keys)

    def is_empty(self, key: str) -> bool:
        return not self.has(key)

    def keys(self, pick: Iterable[str] | None = None, omit: Iterable[str] | None = None) -> list[str]:
        """Data keys of the base snapshot and pending edits, first-seen order."""
        result = [k for k in self._data if not is_reserved(k)]
        seen = set(result)
        for key in self._changes:
            if not is_reserved(key) and key not in seen:
                seen.add(key)
                result.append(key)
        if omit is not None:
            omitted = set(omit)
            result = [k for k in result if k not in omitted]
        if pick is not None:
            picked = set(pick)
            result = [k for k in result if k in picked]
        return result

    def keys_with_data(self, exclude: Iterable[str | Iterable[str]] | None = None) -> list[str]:
        keys = [k for k in self.keys() if self.has(k)]
        if exclude:
            flat: set[str] = set()
            for item in exclude:
                if isinstance(item, str):
                    flat.add(item)
                else:
                    flat.update(item)
            keys = [k for k in keys if k not in flat]
        return keys

    def entries(self) -> list[tuple[str, Any]]:
        return [(k, self.get(k)) for k in self.keys()]

    def values(self) -> dict[str, Any]:
        return dict(self.entries())

    def pick(self, *keys: str) -> dict[str, Any]:
        return {k: self.get(k) for k in keys}

    def each_present(self, keys: Iterable[str], callback: Callable[[str, Any], None]) -> None:
        for key in keys:
            if self.has(key):
                callback(key, self.get(key))

    def intersects(self, other: Record, keys: Iterable[str]) -> bool:
        """True when both records carry the same string value on every key."""
        return all(self.string(k) == other.string(k) for k in keys)

    def hash(self, *keys: str) -> str:
        """Composite grouping key over ``keys`` (or all data keys), in order.

        Returns "" when every hashed value is empty so that rows lacking the
        key fields are never grouped together.
        """
        hashed = keys or tuple(self.keys())
        if not any(self.has(k) for k in hashed):
            return ""
        return HASH_PROP_DELIM.join(
            f"{k}{HASH_VALUE_DELIM}{as_string(self.get(k))}" for k in hashed
        )

    def has_conflict(self, other: Record, keys: Iterable[str] | None = None) -> bool:
        """True when some key holds a non-empty, differing value on both sides."""
        if keys is None:
            compared = list(dict.fromkeys([*self.keys(), *other.keys()]))
        else:
            compared = list(keys)
        for key in compared:
            if self.has(key) and other.has(key) and not _same(self.get(key), other.get(key)):
                return True
        return False

    def is_dirty(self, key: str | None = None) -> bool:
        if key is not None:
            return key in self._changes or bool(self._errs.get(key))
        return bool(self._changes) or bool(self._errs) or self._deleted

    def is_deleted(self) -> bool:
        return self._deleted

    # -- writes ---------------------------------------------------------

    def set(self, key: str, value: Any) -> Record:
        if _same(self._data.get(key), value):
            # base と同値 -> 保留中の変更を破棄
            self._changes.pop(key, None)
            return self
        if key in self._changes and _same(self._changes[key], value):
            return self
        self._changes[key] = value
        return self

    def flag(self, key: str) -> Record:
        return self.set(key, True)

    def unflag(self, key: str) -> Record:
        return self.set(key, False)

    def delete(self) -> Record:
        self._deleted = True
        return self

    def err(self, key: str, message: str) -> Record:
        self._errs.setdefault(key, {})[message] = None
        return self

    def errors(self) -> dict[str, list[str]]:
        return {k: list(msgs) for k, msgs in self._errs.items()}

    def compute(self, key: str, fn: Callable[[Any, Record], Any], message: str | None = None) -> Record:
        """Set ``key`` to ``fn(current value, self)``.

        ``message`` is attached to the field only when the value changes, so
        re-running over already computed rows leaves them clean.
        """
        value = fn(self.get(key), self)
        if _same(self.get(key), value):
            return self
        self.set(key, value)
        if message:
            self.err(key, message)
        return self

    def merge(self, other: Record, overwrite: bool = False) -> Record:
        """Pull ``other``'s present values in; first non-empty wins unless overwrite."""
        for key in other.keys():
            if not other.has(key):
                continue
            if overwrite or not self.has(key):
                self.set(key, other.get(key))
        return self

    def copy(
        self,
        mixin: Record | None = None,
        select: Iterable[str] | None = None,
        slug: str | None = None,
        sheet_id: str | None = None,
    ) -> Record:
        """New unsaved record with a fresh temporary id.

        With ``select`` only those fields are copied, preferring ``mixin``'s
        value. Without it every data field of self is copied and then every
        data field of ``mixin`` is laid over the top.
        """
        new = Record({})
        if slug:
            new.set(SLUG_KEY, slug)
        if sheet_id:
            new.set(SHEET_ID_KEY, sheet_id)
        if select is not None:
            for key in select:
                value = mixin.get(key) if mixin is not None else None
                new.set(key, value if value is not None else self.get(key))
        else:
            for key in self.keys():
                new.set(key, self.get(key))
            if mixin is not None:
                for key in mixin.keys():
                    new.set(key, mixin.get(key))
        return new

    def commit(self) -> None:
        """Fold pending edits and errors into a new frozen base snapshot."""
        snapshot = dict(self._data)
        snapshot.update(self._changes)
        self._changes.clear()
        if self._errs:
            snapshot[ERRORS_KEY] = self._error_list()
        self._errs.clear()
        self._data = MappingProxyType(snapshot)

    # -- serialization --------------------------------------------------

    def changeset(self) -> dict[str, Any]:
        """Pending edits plus identity, deletion and error markers."""
        payload = dict(self._changes)
        for key in (ID_KEY, SHEET_ID_KEY, SLUG_KEY):
            value = self.get(key)
            if value is not None:
                payload[key] = value
        if self._deleted:
            payload[DELETED_KEY] = True
        if self._errs:
            payload[ERRORS_KEY] = self._error_list()
        return payload

    def to_json(self) -> dict[str, Any]:
        return {**self._data, **self.changeset()}

    def _error_list(self) -> list[dict[str, str]]:
        return [{"x": key, "m": msg} for key, msgs in self._errs.items() for msg in msgs]

    def __repr__(self) -> str:
        marker = "(deleted) " if self._deleted else ""
        origin = self.slug or self.sheet_id or ""
        body = json.dumps(self.values(), indent=2, default=str, ensure_ascii=False)
        return f"{marker}{origin}({self.id}) {body}"

    # -- casting accessors ----------------------------------------------

    def string(self, key: str) -> str | None:
        return as_nullable_string(self.get(key))

    def def_string(self, key: str) -> str:
        return as_string(self.get(key))

    def boolean(self, key: str) -> bool:
        return as_bool(self.get(key))

    def date(self, key: str) -> datetime | None:
        return as_date(self.get(key))
