from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .transport import PlatformClient

"""File endpoints (get / update)."""

__all__ = [
    "FILE_UPDATE_KEYS",
    "get_file",
    "update_file",
]

FILE_PATH = "/v1/files/:fileId"

# 空値は送らない
FILE_UPDATE_KEYS = ("name", "mode", "status", "actions", "workbookId")


def get_file(client: PlatformClient, file_id: str) -> dict[str, Any]:
    return client.get(FILE_PATH, [file_id]) or {}


def update_file(client: PlatformClient, file_id: str, patch: Mapping[str, Any]) -> dict[str, Any]:
    """Patch a file; only the updatable keys with non-empty values are sent."""
    body = {key: patch[key] for key in FILE_UPDATE_KEYS if patch.get(key)}
    return client.patch(FILE_PATH, [file_id], json_body=body) or {}
