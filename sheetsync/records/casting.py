from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any

"""Value casting helpers shared by Record accessors and autofix callbacks.

Values arriving from the platform are loosely typed (everything may be a
string, a number, a bool or null). These helpers give a single definition of
"empty" and a predictable string form used for hashing and comparisons.
"""

__all__ = [
    "NULLISH_STRINGS",
    "as_bool",
    "as_date",
    "as_nullable_string",
    "as_number",
    "as_string",
    "is_nullish",
    "is_present",
]

# 空扱いする文字列 (JS 由来の "null" / "undefined" も含む)
NULLISH_STRINGS = frozenset({"", "null", "undefined"})

DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%d.%m.%Y",
    "%b %d %Y",
    "%B %d %Y",
    "%d %b %Y",
    "%d %B %Y",
)

_CURRENCY_RE = re.compile(r"^[^\d\s-]*\s*-?\d+(?:,\d{3})*(?:\.\d{1,2})?$")


def is_nullish(value: Any) -> bool:
    """True for None and the empty/sentinel strings."""
    if value is None:
        return True
    return isinstance(value, str) and value in NULLISH_STRINGS


def is_present(value: Any) -> bool:
    return not is_nullish(value)


def as_string(value: Any) -> str:
    """Stringify a value the way it is hashed and compared.

    None becomes "", containers become compact JSON, booleans become
    lowercase ``true`` / ``false`` so they match the platform's JSON form.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return "[object]"
    return str(value)


def as_nullable_string(value: Any) -> str | None:
    if is_nullish(value):
        return None
    return as_string(value)


def as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in {"", "false", "0", "no", "n", "off", "null", "undefined"}
    return bool(value)


def as_number(value: Any) -> float | int:
    """Best effort numeric conversion, 0 when nothing parses.

    Handles plain numbers, numeric strings, thousand separators, percentages
    (``"12.5%"`` -> 0.125) and currency prefixes (``"$1,200.50"``).
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if not isinstance(value, str):
        return 0
    text = value.strip()
    if not text:
        return 0

    for candidate in (text, text.replace(",", "")):
        try:
            return _int_or_float(candidate)
        except ValueError:
            pass

    if text.endswith("%"):
        try:
            return round(float(text[:-1]) / 100, 12)
        except ValueError:
            pass

    if _CURRENCY_RE.match(text):
        numeric = re.sub(r"[^\d.-]", "", text)
        try:
            return _int_or_float(numeric)
        except ValueError:
            pass
    return 0


def _int_or_float(text: str) -> float | int:
    try:
        return int(text)
    except ValueError:
        return float(text)


def as_date(value: Any) -> datetime | None:
    """Parse ISO-8601 or one of ``DATE_FORMATS``; None when unparseable."""
    if isinstance(value, datetime):
        return value
    text = as_nullable_string(value)
    if text is None:
        return None
    text = text.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    normalized = text.replace(",", "")
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(normalized, fmt)
        except ValueError:
            continue
    return None
