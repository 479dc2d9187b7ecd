"""Remote configuration fetched from the backend."""

import logging
from typing import Any, Dict

from restlink.core.client import ApiClient
from restlink.domain.models.result import Result

logger = logging.getLogger(__name__)


class RemoteConfigService:
    """Fetches the remote config and keeps the last good copy for lookups."""

    def __init__(self, client: ApiClient):
        self.client = client
        self._values: Dict[str, Any] = {}
        self.loaded = False

    async def fetch(self) -> Result:
        result = await self.client.call("config", "GET", authenticated=False)
        if result.ok and isinstance(result.data, dict):
            self._values = dict(result.data)
            self.loaded = True
            logger.debug(f"Remote config loaded with {len(self._values)} keys")
        elif not result.ok:
            logger.warning(f"Remote config fetch failed ({result.kind.value}); keeping previous values")
        return result

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._values)
