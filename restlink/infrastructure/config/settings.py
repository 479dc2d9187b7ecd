"""Provides functions for loading and accessing configuration settings.

Supports loading from a YAML configuration file (e.g. ~/.restlink/config.yaml),
.env files and environment variables, and maps the result onto ClientConfig.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from restlink.domain.models.config import ClientConfig

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".restlink"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "RESTLINK_"

# Dotted config key -> ClientConfig field
CLIENT_CONFIG_KEYS: Dict[str, str] = {
    "restlink.base_url": "base_url",
    "restlink.project_id": "project_id",
    "restlink.project_header": "project_header",
    "restlink.timeout_s": "timeout_s",
    "restlink.max_retries": "max_retries",
    "restlink.backoff_base_s": "backoff_base_s",
    "restlink.backoff_max_s": "backoff_max_s",
    "restlink.backoff_multiplier": "backoff_multiplier",
    "restlink.backoff_jitter": "backoff_jitter",
    "restlink.dispatch_mode": "dispatch_mode",
    "restlink.max_response_bytes": "max_response_bytes",
    "restlink.max_redirects": "max_redirects",
    "restlink.token_store_dir": "token_store_dir",
}

# --- Module Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}
_loaded = False


def _flatten(mapping: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flattens nested YAML sections into dotted keys, keeping dict leaves too."""
    flat: Dict[str, Any] = {}
    for key, value in mapping.items():
        dotted = f"{prefix}{key}"
        flat[dotted] = value
        if isinstance(value, dict) and key not in ("headers", "endpoints"):
            flat.update(_flatten(value, f"{dotted}."))
    return flat


def load_configuration(
    config_file: Path = DEFAULT_CONFIG_FILE,
    env_file: Optional[Path] = None,
    force: bool = False,
) -> None:
    """Loads configuration from a YAML file and a .env file.

    Priority order (highest to lowest):
    1. Test overrides (set_config_for_testing)
    2. Environment Variables
    3. .env file (never overrides variables already in the environment)
    4. YAML configuration file

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
        force: Reload even if configuration was already loaded.
    """
    global _config, _loaded
    if _loaded and not force:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    config_file = Path(config_file)
    if config_file.is_file():
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
        else:
            if isinstance(yaml_config, dict):
                _config.update(_flatten(yaml_config))
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a mapping.")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug("No .env file found at or above current directory.")

    _loaded = True


def _coerce(value: str) -> Any:
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    try:
        return float(value) if "." in value else int(value)
    except ValueError:
        return value


def _env_key(key: str) -> str:
    """'restlink.base_url' -> 'RESTLINK_BASE_URL'."""
    name = key.upper().replace(".", "_")
    return name if name.startswith(ENV_PREFIX) else f"{ENV_PREFIX}{name}"


def get_config(key: str, default: Any = None) -> Any:
    """Get a configuration value by dotted key.

    Args:
        key: The configuration key (e.g. 'restlink.base_url', 'logging.level').
        default: Value returned when the key is not set anywhere.
    """
    if key in _test_config:
        return _test_config[key]

    env_key = _env_key(key)
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    if not _loaded:
        load_configuration()
    if key in _config:
        return _config[key]

    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


def build_client_config(**overrides: Any) -> ClientConfig:
    """Builds a ClientConfig from loaded settings; keyword overrides win.

    Raises:
        ValueError: If the resulting configuration is invalid (e.g. no base URL).
    """
    values: Dict[str, Any] = {}
    for key, field_name in CLIENT_CONFIG_KEYS.items():
        value = get_config(key)
        if value is not None:
            values[field_name] = value

    headers = get_config("restlink.headers")
    if isinstance(headers, dict):
        values["default_headers"] = {str(k): str(v) for k, v in headers.items()}
    endpoints = get_config("restlink.endpoints")
    if isinstance(endpoints, dict):
        values["endpoints"] = {str(k): str(v) for k, v in endpoints.items()}

    values.update(overrides)
    if not values.get("base_url"):
        raise ValueError(
            "No base URL configured. Set restlink.base_url in the config file "
            f"or the {ENV_PREFIX}BASE_URL environment variable."
        )
    if "project_id" in values:
        values["project_id"] = str(values["project_id"])
    logger.debug(f"Building ClientConfig from keys: {sorted(values)}")
    return ClientConfig(**values)


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """Set configuration values that override every other source."""
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")


def reset_configuration() -> None:
    """Forget loaded configuration so the next access reloads it."""
    global _config, _loaded
    _config = {}
    _loaded = False
