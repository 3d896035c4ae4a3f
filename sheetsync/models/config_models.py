from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

"""Config dataclasses for sheetsync.

Two kinds of configuration live here:

- application settings loaded from ``config/sheetsync.yml`` (``AppConfig``
  and its sections), built by ``sheetsync.config.loader``
- sheet schemas fetched from the platform (``SheetConfig`` / ``FieldConfig``),
  which carry the dedupe-field markers the merge engine reads
"""

__all__ = [
    "ApiConfig",
    "AppConfig",
    "AutofixConfig",
    "DedupeConfig",
    "FieldConfig",
    "RecordsConfig",
    "SheetConfig",
]


@dataclass(frozen=True)
class ApiConfig:
    """Platform API connection settings.

    The token itself is never stored in the YAML file; ``token_env`` names the
    environment variable it is read from.
    """
    base_url: str
    token: str | None
    token_env: str = "SHEETSYNC_API_KEY"
    timeout: float = 30.0
    max_attempts: int = 5  # 再試行を含む最大試行回数
    retry_delay: float = 0.5  # 初回バックオフ (秒)
    retry_max_delay: float = 30.0  # バックオフ上限 (秒)


@dataclass(frozen=True)
class RecordsConfig:
    page_size: int = 1000
    sheet_page_size: int = 2000
    write_batch_size: int = 1000


@dataclass(frozen=True)
class DedupeConfig:
    """Dedupe job settings.

    ``override_keys`` replaces the sheet's dedupe-field markers when non-empty.
    """
    override_keys: tuple[str, ...] = ("email",)


@dataclass(frozen=True)
class AutofixConfig:
    date_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class AppConfig:
    """Root configuration object."""
    api: ApiConfig
    records: RecordsConfig = field(default_factory=RecordsConfig)
    dedupe: DedupeConfig = field(default_factory=DedupeConfig)
    autofix: AutofixConfig = field(default_factory=AutofixConfig)
    error_log_dir: str = "./logs"


@dataclass(frozen=True)
class FieldConfig:
    """One field of a platform sheet schema."""
    key: str
    type: str = "string"
    label: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_dedupe_field(self) -> bool:
        return bool(self.metadata.get("is_dedupe_field"))

    @staticmethod
    def from_payload(payload: Mapping[str, Any]) -> FieldConfig:
        return FieldConfig(
            key=str(payload["key"]),
            type=str(payload.get("type", "string")),
            label=payload.get("label"),
            metadata=payload.get("metadata") or {},
        )


@dataclass(frozen=True)
class SheetConfig:
    """Sheet schema as returned inside ``GET /v1/sheets/:sheetId``."""
    name: str
    slug: str | None
    fields: tuple[FieldConfig, ...]

    def dedupe_field_keys(self) -> list[str]:
        return [f.key for f in self.fields if f.is_dedupe_field]

    def keys(self) -> list[str]:
        return [f.key for f in self.fields]

    @staticmethod
    def from_payload(payload: Mapping[str, Any]) -> SheetConfig:
        return SheetConfig(
            name=str(payload.get("name", "")),
            slug=payload.get("slug"),
            fields=tuple(FieldConfig.from_payload(f) for f in payload.get("fields") or ()),
        )
