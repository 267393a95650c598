"""DynamoDB backend for UI form-state sessions on Lambda."""

from __future__ import annotations

import json
import time
from contextlib import asynccontextmanager
from typing import Any

import aioboto3

from .backend import DEFAULT_MAX_AGE


class DynamoDBSessionBackend:
    """Session backend using AWS DynamoDB.

    Table schema:
        Partition key: session_id (S)
        Attributes: data (S, JSON-encoded), saved_at (N), ttl (N)

    Enable TTL on the `ttl` attribute for automatic cleanup.
    """

    def __init__(
        self,
        table_name: str = "edge_auth_ui_sessions",
        max_age: int = DEFAULT_MAX_AGE,
        endpoint_url: str = "",
        region_name: str = "us-east-1",
    ) -> None:
        self._table_name = table_name
        self._max_age = max_age
        self._session = aioboto3.Session()
        self._endpoint_url = endpoint_url or None
        self._region_name = region_name

    @asynccontextmanager
    async def _table(self):
        async with self._session.resource(
            "dynamodb",
            endpoint_url=self._endpoint_url,
            region_name=self._region_name,
        ) as dynamodb:
            yield await dynamodb.Table(self._table_name)

    async def load(self, session_id: str) -> dict[str, Any] | None:
        async with self._table() as table:
            response = await table.get_item(Key={"session_id": session_id})
            item = response.get("Item")
            if item is None:
                return None
            if time.time() - float(item.get("saved_at", 0)) > self._max_age:
                await table.delete_item(Key={"session_id": session_id})
                return None
        return json.loads(item["data"])

    async def save(self, session_id: str, data: dict[str, Any]) -> None:
        now = int(time.time())
        async with self._table() as table:
            await table.put_item(
                Item={
                    "session_id": session_id,
                    "data": json.dumps(data),
                    "saved_at": now,
                    "ttl": now + self._max_age,
                }
            )

    async def delete(self, session_id: str) -> None:
        async with self._table() as table:
            await table.delete_item(Key={"session_id": session_id})
