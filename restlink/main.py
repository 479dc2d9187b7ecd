"""Composition root for applications embedding restlink.

Loads configuration, configures logging and wires the concrete adapters
(httpx transport, asyncio timer, diskcache token store, event dispatcher)
into an initialized ApiClient.
"""

import logging
from pathlib import Path
from typing import Any, Optional

from restlink.core.client import ApiClient
from restlink.domain.interfaces.token_store import TokenStore
from restlink.domain.models.config import ClientConfig
from restlink.infrastructure.config.settings import (
    DEFAULT_CONFIG_FILE,
    build_client_config,
    get_config,
    load_configuration,
)
from restlink.infrastructure.monitoring.event_bus import EventDispatcher
from restlink.infrastructure.monitoring.logger_setup import (
    DEFAULT_LOG_FORMAT,
    parse_log_level,
    setup_logging,
)
from restlink.infrastructure.storage.disk_token_store import DiskTokenStore
from restlink.infrastructure.storage.memory_token_store import MemoryTokenStore
from restlink.infrastructure.timer.asyncio_timer import AsyncioTimer
from restlink.infrastructure.transport.httpx_transport import HttpxTransport

logger = logging.getLogger(__name__)


def configure_logging_from_settings() -> None:
    setup_logging(
        log_level=parse_log_level(get_config("logging.level", "INFO")),
        log_format=get_config("logging.format", DEFAULT_LOG_FORMAT),
        log_file=get_config("logging.file"),
    )


def create_token_store(config: ClientConfig) -> TokenStore:
    if config.token_store_dir:
        return DiskTokenStore(config.token_store_dir)
    return MemoryTokenStore()


def create_client(
    config_file: Path = DEFAULT_CONFIG_FILE,
    env_file: Optional[Path] = None,
    configure_logging: bool = True,
    events: Optional[EventDispatcher] = None,
    **overrides: Any,
) -> ApiClient:
    """Creates and wires up an initialized ApiClient.

    Args:
        config_file: YAML configuration file.
        env_file: .env file (searched upwards from cwd when None).
        configure_logging: Whether to configure the root logger from settings.
        events: Existing dispatcher to publish on; a new one when None.
        **overrides: ClientConfig fields taking precedence over loaded settings.

    Returns:
        An initialized ApiClient; call `await client.shutdown()` when done.

    Raises:
        ValueError: If the resulting configuration is invalid.
    """
    load_configuration(config_file=config_file, env_file=env_file)
    if configure_logging:
        configure_logging_from_settings()

    config = build_client_config(**overrides)
    client = ApiClient(
        config,
        transport=HttpxTransport(
            max_response_bytes=config.max_response_bytes,
            max_redirects=config.max_redirects,
        ),
        token_store=create_token_store(config),
        timer=AsyncioTimer(),
        events=events or EventDispatcher(),
    )
    client.initialize()
    logger.info("restlink client ready.")
    return client
