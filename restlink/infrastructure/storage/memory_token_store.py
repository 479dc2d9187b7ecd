"""Token store that keeps credentials in process memory only."""

import logging
from typing import Optional

from restlink.domain.interfaces.token_store import TokenStore
from restlink.domain.models.credentials import CredentialBundle

logger = logging.getLogger(__name__)


class MemoryTokenStore(TokenStore):
    """Non-persistent TokenStore; credentials are lost on exit."""

    def __init__(self, initial: Optional[CredentialBundle] = None):
        self._credentials = initial or CredentialBundle.empty()
        self.save_count = 0
        self.clear_count = 0

    def load(self) -> CredentialBundle:
        return self._credentials

    def save(self, credentials: CredentialBundle) -> None:
        self._credentials = credentials
        self.save_count += 1
        logger.debug(f"Stored credentials in memory for user '{credentials.user_id}'")

    def clear(self) -> None:
        self._credentials = CredentialBundle.empty()
        self.clear_count += 1
