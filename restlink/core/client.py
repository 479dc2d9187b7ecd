"""Client facade.

Holds the configuration and collaborator references and exposes the one
operation domain wrappers need: "execute this logical request and give me a
Result". Constructed once by the application, initialized once, shut down
explicitly.
"""

import logging
import time
from typing import Any, Dict, Mapping, Optional

from restlink.core.auth_coordinator import AuthRefreshCoordinator
from restlink.core.backoff import BackoffPolicy
from restlink.core.dispatcher import RequestDispatcher
from restlink.core.errors import (
    ClientAlreadyInitializedError,
    ClientClosedError,
    ClientNotInitializedError,
    UnknownEndpointError,
)
from restlink.core.executor import JSON_HEADERS, RequestExecutor
from restlink.domain.events.client_events import RequestFinished, RequestStarted
from restlink.domain.interfaces.timer import Timer
from restlink.domain.interfaces.token_store import TokenStore
from restlink.domain.interfaces.transport import Transport
from restlink.domain.models.common import EndpointName, PathTemplate
from restlink.domain.models.config import ClientConfig
from restlink.domain.models.credentials import CredentialBundle
from restlink.domain.models.request import AUTHORIZATION_HEADER, BEARER_PREFIX, LogicalRequest
from restlink.domain.models.result import Result
from restlink.infrastructure.monitoring.event_bus import EventDispatcher
from restlink.infrastructure.storage.memory_token_store import MemoryTokenStore
from restlink.infrastructure.timer.asyncio_timer import AsyncioTimer
from restlink.infrastructure.transport.httpx_transport import HttpxTransport

logger = logging.getLogger(__name__)


def substitute_path(template: PathTemplate, params: Mapping[str, Any]) -> str:
    """Replaces each `{name}` in `template` with str(params[name]), verbatim."""
    path = template
    for name, value in params.items():
        path = path.replace(f"{{{name}}}", str(value))
    return path


class ApiClient:
    """Entry point for issuing requests against the backend."""

    def __init__(
        self,
        config: ClientConfig,
        transport: Optional[Transport] = None,
        token_store: Optional[TokenStore] = None,
        timer: Optional[Timer] = None,
        events: Optional[EventDispatcher] = None,
        backoff: Optional[BackoffPolicy] = None,
    ):
        """Initializes the ApiClient. No I/O happens until initialize().

        Args:
            config: Validated client configuration.
            transport: HTTP transport; an HttpxTransport is built when None.
            token_store: Credential persistence; in-memory when None.
            timer: Timer for timeouts and backoff waits.
            events: Event dispatcher observers subscribe to.
            backoff: Backoff policy; derived from `config` when None.
        """
        self.config = config
        self.events = events or EventDispatcher()
        self.backoff = backoff or BackoffPolicy.from_config(config)
        self._transport = transport
        self._timer = timer or AsyncioTimer()
        self._token_store = token_store or MemoryTokenStore()
        self.coordinator = AuthRefreshCoordinator(
            self._token_store,
            events=self.events,
            refresh_path=config.endpoints["refresh"],
            run_request=self._run_direct,
        )
        self._dispatcher: Optional[RequestDispatcher] = None
        self._closed = False

        logger.info(
            f"ApiClient created: base_url={config.base_url}, timeout={config.timeout_s}s, "
            f"max_retries={config.max_retries}, mode={config.dispatch_mode.value}"
        )

    # --- Lifecycle ---

    @property
    def initialized(self) -> bool:
        return self._dispatcher is not None and not self._closed

    def initialize(self) -> "ApiClient":
        """Loads persisted credentials and starts the dispatcher. Call exactly once.

        Raises:
            ClientAlreadyInitializedError: On a second call.
            ClientClosedError: After shutdown().
        """
        if self._closed:
            raise ClientClosedError()
        if self._dispatcher is not None:
            raise ClientAlreadyInitializedError()

        if self._transport is None:
            self._transport = HttpxTransport(
                max_response_bytes=self.config.max_response_bytes,
                max_redirects=self.config.max_redirects,
            )
        credentials = self.coordinator.load()
        self._dispatcher = RequestDispatcher(self._create_executor, self.config.dispatch_mode)
        logger.info(f"ApiClient initialized (signed in: {credentials.has_tokens()})")
        return self

    async def shutdown(self) -> None:
        """Cancels queued and running requests and closes the transport."""
        if self._closed:
            return
        self._closed = True
        if self._dispatcher is not None:
            await self._dispatcher.shutdown()
        if self._transport is not None:
            await self._transport.close()
        logger.info("ApiClient shut down")

    async def __aenter__(self) -> "ApiClient":
        if not self.initialized:
            self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    # --- Credentials ---

    @property
    def credentials(self) -> CredentialBundle:
        return self.coordinator.credentials

    def set_credentials(self, credentials: CredentialBundle) -> None:
        self.coordinator.set_credentials(credentials)

    def clear_credentials(self) -> None:
        self.coordinator.clear_credentials()

    # --- Requests ---

    def endpoint(self, name: EndpointName, **params: Any) -> str:
        """Resolves an endpoint template (after overrides) into a concrete path.

        Raises:
            UnknownEndpointError: If no template is registered under `name`.
        """
        try:
            template = self.config.endpoints[name]
        except KeyError:
            raise UnknownEndpointError(name) from None
        return substitute_path(template, params)

    async def execute(
        self,
        method: str,
        path: str,
        body: Optional[Any] = None,
        headers: Optional[Mapping[str, str]] = None,
        *,
        authenticated: bool = True,
        allow_refresh: bool = True,
    ) -> Result:
        """Executes a logical request and returns its Result.

        Raises:
            ClientNotInitializedError: If initialize() has not been called.
            ClientClosedError: After shutdown().
        """
        request = LogicalRequest(
            method=method,
            path=path,
            body=body,
            headers=headers or {},
            authenticated=authenticated,
            allow_refresh=allow_refresh,
        )
        return await self.submit(request)

    async def call(
        self,
        endpoint_name: str,
        method: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        body: Optional[Any] = None,
        authenticated: bool = True,
        allow_refresh: bool = True,
    ) -> Result:
        """execute() against a named endpoint template."""
        path = self.endpoint(endpoint_name, **(params or {}))
        return await self.execute(
            method, path, body, authenticated=authenticated, allow_refresh=allow_refresh
        )

    async def submit(self, request: LogicalRequest) -> Result:
        if self._closed:
            raise ClientClosedError()
        if self._dispatcher is None:
            raise ClientNotInitializedError("execute")

        self.events.dispatch(RequestStarted(
            method=request.method, path=request.path, request_id=request.request_id
        ))
        start_time = time.perf_counter()
        result = await self._dispatcher.submit(request)
        latency_ms = (time.perf_counter() - start_time) * 1000
        self.events.dispatch(RequestFinished(
            method=request.method,
            path=request.path,
            ok=result.ok,
            status=result.status,
            request_id=request.request_id,
            latency_ms=latency_ms,
        ))
        if not result.ok:
            logger.debug(
                f"[{request.request_id}] {request.describe()} -> {result.kind.value}: {result.error.message}"
            )
        return result

    # --- Executor wiring ---

    def build_headers(self, request: LogicalRequest) -> Dict[str, str]:
        """Header set for one attempt; read fresh each attempt so renewed tokens apply."""
        headers = dict(JSON_HEADERS)
        headers.update(self.config.default_headers)
        if self.config.project_id:
            headers[self.config.project_header] = self.config.project_id
        access_token = self.coordinator.credentials.access_token
        if request.authenticated and access_token:
            headers[AUTHORIZATION_HEADER] = f"{BEARER_PREFIX}{access_token}"
        headers.update(request.headers)
        return headers

    def _create_executor(self, request: LogicalRequest) -> RequestExecutor:
        return RequestExecutor(
            request,
            self._transport,
            self._timer,
            self.backoff,
            base_url=self.config.base_url,
            timeout_s=self.config.timeout_s,
            max_retries=self.config.max_retries,
            header_provider=self.build_headers,
            auth_handler=self.coordinator,
            events=self.events,
        )

    async def _run_direct(self, request: LogicalRequest) -> Result:
        """Runs `request` on its own executor, outside the dispatcher queue.

        Used for refresh and replay, which happen while the triggering request
        still holds the serialized slot.
        """
        if self._transport is None:
            raise ClientNotInitializedError("execute")
        return await self._create_executor(request).execute()
