"""Token store persisting the credential bundle with `diskcache`.

The bundle is stored as a plain dict under a single key so a partially
written bundle can never be observed.
"""

import logging
from pathlib import Path
from typing import Union

import diskcache as dc

from restlink.domain.interfaces.token_store import TokenStore
from restlink.domain.models.credentials import CredentialBundle

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_DIR = Path.home() / ".restlink" / "tokens"
CREDENTIALS_KEY = "credentials"


class DiskTokenStore(TokenStore):
    """TokenStore backed by a diskcache.Cache directory."""

    def __init__(self, directory: Union[str, Path] = DEFAULT_TOKEN_DIR):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._cache = dc.Cache(str(self.directory), timeout=1)
        logger.info(f"DiskTokenStore initialized at: {self._cache.directory}")

    def load(self) -> CredentialBundle:
        raw = self._cache.get(CREDENTIALS_KEY, default=None)
        if not isinstance(raw, dict):
            if raw is not None:
                logger.warning("Ignoring malformed credential entry in token store.")
            return CredentialBundle.empty()
        credentials = CredentialBundle.from_dict(raw)
        logger.debug(f"Loaded credentials for user '{credentials.user_id}'")
        return credentials

    def save(self, credentials: CredentialBundle) -> None:
        self._cache.set(CREDENTIALS_KEY, credentials.to_dict())
        logger.debug(f"Persisted credentials for user '{credentials.user_id}'")

    def clear(self) -> None:
        self._cache.delete(CREDENTIALS_KEY)
        logger.debug("Cleared persisted credentials")

    def close(self) -> None:
        self._cache.close()
