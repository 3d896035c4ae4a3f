from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .transport import PlatformClient

"""Space endpoints (get / list / update)."""

__all__ = [
    "get_space",
    "list_spaces",
    "update_space",
]

SPACES_PATH = "/v1/spaces"
SPACE_PATH = "/v1/spaces/:spaceId"


def get_space(client: PlatformClient, space_id: str) -> dict[str, Any]:
    return client.get(SPACE_PATH, [space_id]) or {}


def list_spaces(client: PlatformClient, environment_id: str | None = None, **query: Any) -> list[dict[str, Any]]:
    return client.get(SPACES_PATH, query={"environmentId": environment_id, **query}) or []


def update_space(client: PlatformClient, space_id: str, config: Mapping[str, Any]) -> dict[str, Any]:
    return client.patch(SPACE_PATH, [space_id], json_body=dict(config)) or {}
