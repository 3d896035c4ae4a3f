from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from ..models.config_models import FieldConfig, SheetConfig
from .pagination import PaginatedCollection
from .records import get_record_counts, get_records
from .transport import PlatformClient

"""Sheet lookup and the ``KnownSheet`` wrapper."""

__all__ = [
    "KnownSheet",
    "SHEET_PAGE_SIZE",
    "get_sheet",
    "unique_fields",
]

SHEET_PATH = "/v1/sheets/:sheetId"
SHEET_PAGE_SIZE = 2000


class KnownSheet:
    """A fetched sheet plus its schema."""

    def __init__(self, raw: Mapping[str, Any], client: PlatformClient, page_size: int = SHEET_PAGE_SIZE) -> None:
        self.raw = raw
        self.client = client
        self.page_size = page_size
        self.config = SheetConfig.from_payload(raw.get("config") or {})

    @property
    def id(self) -> str:
        return str(self.raw["id"])

    @property
    def slug(self) -> str | None:
        return self.raw.get("slug") or self.config.slug

    @property
    def name(self) -> str:
        return str(self.raw.get("name") or self.config.name)

    @property
    def fields(self) -> tuple[FieldConfig, ...]:
        return self.config.fields

    def keys(self) -> list[str]:
        return self.config.keys()

    def dedupe_field_keys(self) -> list[str]:
        return self.config.dedupe_field_keys()

    def get_all_records(self, with_count: bool = False) -> PaginatedCollection[dict[str, Any]]:
        def load_page(page: int, size: int) -> list[dict[str, Any]]:
            return get_records(self.client, self.id, page_number=page, page_size=size)

        def count_total() -> int:
            return int(get_record_counts(self.client, self.id).get("total", 0))

        return PaginatedCollection(
            load_page,
            page_size=self.page_size,
            get_count=count_total if with_count else None,
        )

    def __repr__(self) -> str:
        return f"KnownSheet(id={self.id!r}, slug={self.slug!r})"


def get_sheet(client: PlatformClient, sheet_id: str, page_size: int = SHEET_PAGE_SIZE) -> KnownSheet:
    return KnownSheet(client.get(SHEET_PATH, [sheet_id]) or {"id": sheet_id}, client, page_size=page_size)


def unique_fields(fields: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Field payloads deduplicated by key, first wins.

    Reference fields become plain strings (their ``config`` is dropped) and
    ``constraints`` are removed, so the result can seed a new sheet.
    """
    seen: set[str] = set()
    out: list[dict[str, Any]] = []
    for f in fields:
        if f["key"] in seen:
            continue
        seen.add(f["key"])
        copied = {k: v for k, v in f.items() if k != "constraints"}
        if copied.get("type") == "reference":
            copied["type"] = "string"
            copied.pop("config", None)
        out.append(copied)
    return out
