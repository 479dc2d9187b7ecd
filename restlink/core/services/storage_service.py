"""Per-user key-value storage."""

from typing import Any

from restlink.core.client import ApiClient
from restlink.core.services._validation import require_text
from restlink.domain.models.result import Result


class StorageService:
    """Reads and writes the signed-in user's key-value storage."""

    def __init__(self, client: ApiClient):
        self.client = client

    async def get(self, key: str) -> Result:
        invalid = require_text(key, "key")
        if invalid:
            return invalid
        return await self.client.call("storage_get", "GET", params={"key": key})

    async def set(self, key: str, value: Any) -> Result:
        invalid = require_text(key, "key")
        if invalid:
            return invalid
        return await self.client.call("storage_set", "PUT", params={"key": key}, body={"value": value})

    async def delete(self, key: str) -> Result:
        invalid = require_text(key, "key")
        if invalid:
            return invalid
        return await self.client.call("storage_delete", "DELETE", params={"key": key})

    async def list_keys(self) -> Result:
        return await self.client.call("storage_list", "GET")
