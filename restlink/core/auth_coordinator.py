"""Auth refresh coordination.

Recovers from an expired access token without surfacing it to the caller:
on UNAUTHORIZED the coordinator refreshes credentials (at most one refresh in
flight per client; concurrent 401s await the same cycle) and replays the
original request exactly once with the new token.

The coordinator is the only writer of the credential bundle. Executors read it
through `credentials` when building the Authorization header.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple

from restlink.domain.events.client_events import AuthStateChanged, BannedDetected, TokenRefreshed
from restlink.domain.interfaces.auth_handler import AuthHandler
from restlink.domain.interfaces.token_store import TokenStore
from restlink.domain.models.credentials import CredentialBundle
from restlink.domain.models.request import LogicalRequest
from restlink.domain.models.result import ErrorKind, Result
from restlink.infrastructure.monitoring.event_bus import EventDispatcher

logger = logging.getLogger(__name__)

# Runs a logical request through a fresh executor, bypassing the dispatcher queue
RequestRunner = Callable[[LogicalRequest], Awaitable[Result]]


class AuthRefreshCoordinator(AuthHandler):
    """Owns the credential bundle and the single-flight refresh gate."""

    def __init__(
        self,
        token_store: TokenStore,
        events: Optional[EventDispatcher] = None,
        refresh_path: str = "/auth/refresh",
        run_request: Optional[RequestRunner] = None,
    ):
        """Initializes the coordinator.

        Args:
            token_store: Persistence for the credential bundle.
            events: Dispatcher for TokenRefreshed/AuthStateChanged/BannedDetected.
            refresh_path: Path of the refresh endpoint.
            run_request: Executes refresh and replay requests. The client binds this.
        """
        self._token_store = token_store
        self._events = events
        self.refresh_path = refresh_path
        self._run_request = run_request
        self._credentials = CredentialBundle.empty()
        self._refresh_task: Optional["asyncio.Task[Result]"] = None
        # (access token the failed cycle was refreshing, refresh Result)
        self._failed_cycle: Optional[Tuple[str, Result]] = None
        self.refresh_count = 0

    def bind_runner(self, run_request: RequestRunner) -> None:
        self._run_request = run_request

    # --- Credential access ---

    @property
    def credentials(self) -> CredentialBundle:
        return self._credentials

    @property
    def refresh_in_flight(self) -> bool:
        return self._refresh_task is not None

    def load(self) -> CredentialBundle:
        """Loads the persisted bundle into memory."""
        self._credentials = self._token_store.load()
        logger.debug(f"Loaded {self._credentials!r}")
        return self._credentials

    def set_credentials(self, credentials: CredentialBundle, persist: bool = True) -> None:
        """Replaces the bundle (e.g. after login) and announces the signed-in user."""
        previous_user = self._credentials.user_id
        self._credentials = credentials
        self._failed_cycle = None
        if persist:
            self._token_store.save(credentials)
        if credentials.user_id != previous_user:
            self._dispatch(AuthStateChanged(user_id=credentials.user_id or None))

    def clear_credentials(self) -> None:
        """Forgets the bundle in memory and in the store; announces "no user"."""
        had_user = bool(self._credentials.user_id or self._credentials.has_tokens())
        self._credentials = CredentialBundle.empty()
        self._token_store.clear()
        if had_user:
            self._dispatch(AuthStateChanged(user_id=None))

    # --- AuthHandler ---

    async def on_unauthorized(
        self,
        request: LogicalRequest,
        failure: Result,
        attempted_token: Optional[str] = None,
    ) -> Result:
        tag = f"[{request.request_id}] {request.describe()}"
        current = self._credentials

        if not current.refresh_token:
            if self._failed_cycle is not None and attempted_token == self._failed_cycle[0]:
                # Late 401 for a token whose refresh already failed
                logger.debug(f"{tag} carried a token whose refresh already failed")
                return self._refresh_failed(failure, self._failed_cycle[1])
            logger.info(f"{tag} unauthorized and no refresh token is held")
            return failure

        if (
            self._refresh_task is None
            and attempted_token
            and current.access_token
            and attempted_token != current.access_token
        ):
            # Rejected token is already stale: a previous cycle renewed it
            logger.debug(f"{tag} carried a superseded token; replaying without refreshing")
            return await self._replay(request, current.access_token)

        if self._refresh_task is None:
            self._refresh_task = asyncio.ensure_future(self._refresh(current))
        else:
            logger.debug(f"{tag} awaiting refresh already in flight")

        refresh = await asyncio.shield(self._refresh_task)
        if not refresh.ok:
            return self._refresh_failed(failure, refresh)
        return await self._replay(request, self._credentials.access_token)

    def on_banned(self, details: Any) -> None:
        logger.warning("Backend reported the current account as banned")
        self._dispatch(BannedDetected(details=details))

    # --- Internal ---

    async def _refresh(self, stale: CredentialBundle) -> Result:
        """One refresh cycle. Always clears the in-flight gate before returning."""
        if self._run_request is None:
            raise RuntimeError("AuthRefreshCoordinator has no request runner bound")
        try:
            self.refresh_count += 1
            logger.info("Refreshing access token")
            request = LogicalRequest(
                method="POST",
                path=self.refresh_path,
                body={"refresh_token": stale.refresh_token},
                authenticated=False,
                allow_refresh=False,
            )
            result = await self._run_request(request)
            if result.ok:
                renewed = self._credentials_from(result.data, stale)
                if renewed is None:
                    result = Result.failure(
                        ErrorKind.INVALID_RESPONSE,
                        "Refresh response did not contain an access token",
                        details=result.data,
                    )
                else:
                    self._credentials = renewed
                    self._token_store.save(renewed)
                    self._failed_cycle = None
                    logger.info("Access token refreshed")
                    self._dispatch(TokenRefreshed(ok=True))
                    return result

            logger.warning(f"Token refresh failed ({result.kind.value}); signing out")
            self.clear_credentials()
            self._failed_cycle = (stale.access_token, result)
            self._dispatch(TokenRefreshed(ok=False))
            return result
        finally:
            self._refresh_task = None

    @staticmethod
    def _credentials_from(data: Any, stale: CredentialBundle) -> Optional[CredentialBundle]:
        if not isinstance(data, dict) or not data.get("access_token"):
            return None
        return CredentialBundle(
            user_id=str(data.get("user_id") or stale.user_id),
            access_token=str(data["access_token"]),
            refresh_token=str(data.get("refresh_token") or stale.refresh_token),
        )

    @staticmethod
    def _refresh_failed(failure: Result, refresh: Result) -> Result:
        """UNAUTHORIZED Result handed to every request whose token the failed cycle covered."""
        return Result.failure(
            ErrorKind.UNAUTHORIZED,
            failure.error.message if failure.error else "Unauthorized",
            status=failure.status or 401,
            details=refresh.error,
        )

    async def _replay(self, request: LogicalRequest, access_token: str) -> Result:
        logger.debug(f"[{request.request_id}] replaying {request.describe()} with renewed token")
        return await self._run_request(request.as_replay(access_token))

    def _dispatch(self, event) -> None:
        if self._events:
            self._events.dispatch(event)
