from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import ApiConfig, AppConfig, AutofixConfig, DedupeConfig, RecordsConfig

"""Config loader.

Responsibilities:
- Load YAML config (default ``config/sheetsync.yml``)
- Validate against ``config_schema.json`` shipped next to this module
- Apply defaults for every optional section
- Let environment variables override the API base URL and supply the token
"""

__all__ = [
    "API_URL_ENV",
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
]

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/sheetsync.yml")

API_URL_ENV = "SHEETSYNC_API_URL"


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: when the schema file is missing or unreadable, or when the
            config data violates it (missing keys, wrong types, unknown keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> AppConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping, got {type(data).__name__}")

    _validate_config_schema(data)

    api_raw = data["api"]
    token_env = api_raw.get("token_env", "SHEETSYNC_API_KEY")
    # 環境変数を優先 (.env は CLI 側で override 読み込み済み)
    base_url = os.getenv(API_URL_ENV) or api_raw["base_url"]
    api = ApiConfig(
        base_url=base_url.rstrip("/"),
        token=os.getenv(token_env),
        token_env=token_env,
        timeout=float(api_raw.get("timeout", 30.0)),
        max_attempts=int(api_raw.get("max_attempts", 5)),
        retry_delay=float(api_raw.get("retry_delay", 0.5)),
        retry_max_delay=float(api_raw.get("retry_max_delay", 30.0)),
    )

    records_raw = data.get("records", {})
    dedupe_raw = data.get("dedupe", {})
    autofix_raw = data.get("autofix", {})
    return AppConfig(
        api=api,
        records=RecordsConfig(
            page_size=records_raw.get("page_size", 1000),
            sheet_page_size=records_raw.get("sheet_page_size", 2000),
            write_batch_size=records_raw.get("write_batch_size", 1000),
        ),
        dedupe=DedupeConfig(override_keys=tuple(dedupe_raw.get("override_keys", ("email",)))),
        autofix=AutofixConfig(date_fields=tuple(autofix_raw.get("date_fields", ()))),
        error_log_dir=data.get("error_log_dir", "./logs"),
    )
