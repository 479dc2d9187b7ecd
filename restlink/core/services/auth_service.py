"""Authentication operations: register, login, logout."""

import logging
from typing import Any, Optional

from restlink.core.client import ApiClient
from restlink.core.services._validation import require_text
from restlink.domain.models.common import UserId
from restlink.domain.models.credentials import CredentialBundle
from restlink.domain.models.result import ErrorKind, Result

logger = logging.getLogger(__name__)


class AuthService:
    """Signs users in and out; credentials end up in the client's coordinator."""

    def __init__(self, client: ApiClient):
        self.client = client

    @property
    def current_user_id(self) -> Optional[UserId]:
        return UserId(self.client.credentials.user_id) if self.client.credentials.user_id else None

    def is_logged_in(self) -> bool:
        return self.client.credentials.has_tokens()

    async def register(self, username: str, password: str, **profile: Any) -> Result:
        """Creates an account and signs it in when the backend returns tokens."""
        invalid = require_text(username, "username") or require_text(password, "password")
        if invalid:
            return invalid
        result = await self.client.call(
            "register", "POST",
            body={"username": username, "password": password, **profile},
            authenticated=False, allow_refresh=False,
        )
        if result.ok and isinstance(result.data, dict) and result.data.get("access_token"):
            return self._adopt_session(result)
        return result

    async def login(self, username: str, password: str) -> Result:
        """Signs in and persists the returned credential bundle.

        Returns:
            The login Result; INVALID_RESPONSE if the body carries no tokens.
        """
        invalid = require_text(username, "username") or require_text(password, "password")
        if invalid:
            return invalid
        result = await self.client.call(
            "login", "POST",
            body={"username": username, "password": password},
            authenticated=False, allow_refresh=False,
        )
        if not result.ok:
            return result
        return self._adopt_session(result)

    async def logout(self) -> Result:
        """Revokes the session server-side (best effort) and always clears it locally.

        Returns:
            A successful Result whose data reports whether the server revoke succeeded.
        """
        credentials = self.client.credentials
        revoked = False
        if credentials.refresh_token:
            result = await self.client.call(
                "logout", "POST",
                body={"refresh_token": credentials.refresh_token},
                allow_refresh=False,
            )
            revoked = result.ok
            if not result.ok:
                logger.warning(
                    f"Server-side logout failed ({result.kind.value}); clearing local session anyway"
                )
        self.client.clear_credentials()
        return Result.success({"revoked": revoked})

    def _adopt_session(self, result: Result) -> Result:
        data = result.data if isinstance(result.data, dict) else {}
        credentials = CredentialBundle.from_dict(data)
        if not credentials.has_tokens():
            return Result.failure(
                ErrorKind.INVALID_RESPONSE,
                "Authentication response did not contain both tokens",
                status=result.status,
                details=data,
            )
        self.client.set_credentials(credentials)
        logger.info(f"Signed in as user '{credentials.user_id}'")
        return result
