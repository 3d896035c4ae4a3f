from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .transport import PlatformClient

"""Workbook endpoints (get / list / create / update)."""

__all__ = [
    "create_workbook",
    "get_workbook",
    "list_workbooks",
    "update_workbook",
]

WORKBOOKS_PATH = "/v1/workbooks"
WORKBOOK_PATH = "/v1/workbooks/:workbookId"


def get_workbook(client: PlatformClient, workbook_id: str) -> dict[str, Any]:
    return client.get(WORKBOOK_PATH, [workbook_id]) or {}


def list_workbooks(
    client: PlatformClient, space_id: str | None = None, name: str | None = None, **query: Any
) -> list[dict[str, Any]]:
    return client.get(WORKBOOKS_PATH, query={"spaceId": space_id, "name": name, **query}) or []


def create_workbook(client: PlatformClient, config: Mapping[str, Any]) -> dict[str, Any]:
    return client.post(WORKBOOKS_PATH, json_body=dict(config)) or {}


def update_workbook(client: PlatformClient, workbook_id: str, update: Mapping[str, Any]) -> dict[str, Any]:
    return client.patch(WORKBOOK_PATH, [workbook_id], json_body=dict(update)) or {}
