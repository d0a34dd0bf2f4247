# offline_sync/config.py
# Description: Configuration management for the offline_sync client.
#
# Imports
import copy
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional, Union
#
# Third-Party Imports
import toml
from loguru import logger
#
# Local Imports
from offline_sync.Constants import (
    DEFAULT_CLIENT_ID, DEFAULT_DECISION, DEFAULT_HTTP_TIMEOUT_SECONDS, DEFAULT_PULL_PAGE_SIZE, DEFAULT_SERVER_URL,
    DEFAULT_TABLE_NAME,
)
#
#######################################################################################################################
#
# Functions:

# --- Path to the client's configuration file ---
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "offline_sync" / "config.toml"
BASE_DATA_DIR = Path.home() / ".local" / "share" / "offline_sync"

CONFIG_TOML_CONTENT = f"""
# Configuration for the offline_sync client
# Environment variables OFFLINE_SYNC_SERVER_URL, OFFLINE_SYNC_TABLE, OFFLINE_SYNC_CLIENT_ID,
# OFFLINE_SYNC_DB_PATH and OFFLINE_SYNC_LOG_LEVEL override the values below.

[general]
log_level = "INFO"
client_id = "{DEFAULT_CLIENT_ID}"

[sync]
server_url = "{DEFAULT_SERVER_URL}"
table = "{DEFAULT_TABLE_NAME}"
request_timeout = {DEFAULT_HTTP_TIMEOUT_SECONDS}
pull_page_size = {DEFAULT_PULL_PAGE_SIZE}
# Answer used when no interactive presenter is attached: "server", "client" or "skip".
default_decision = "{DEFAULT_DECISION}"

[database]
queue_db_path = "~/.local/share/offline_sync/offline_sync_queue.db"

[logging]
log_filename = "offline_sync.log"
file_log_level = "DEBUG"
log_rotation = "10 MB"
log_retention = "7 days"
metrics_enabled = false
metrics_filename = "offline_sync_metrics.json"
"""

try:
    DEFAULT_CONFIG: Dict[str, Any] = tomllib.loads(CONFIG_TOML_CONTENT)
except tomllib.TOMLDecodeError as e:
    logger.critical(f"FATAL: Could not parse internal CONFIG_TOML_CONTENT: {e}.")
    DEFAULT_CONFIG = {}

# (section, key, env var) triples applied after the TOML file is merged
ENV_OVERRIDES = (
    ("sync", "server_url", "OFFLINE_SYNC_SERVER_URL"),
    ("sync", "table", "OFFLINE_SYNC_TABLE"),
    ("general", "client_id", "OFFLINE_SYNC_CLIENT_ID"),
    ("database", "queue_db_path", "OFFLINE_SYNC_DB_PATH"),
    ("general", "log_level", "OFFLINE_SYNC_LOG_LEVEL"),
)


def deep_merge_dicts(base: Dict, update: Dict) -> Dict:
    """Recursively merges update_dict into base_dict."""
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def _get_typed_value(data_dict: Dict, key: str, default: Any, target_type: type = str) -> Any:
    """Helper to get value from dict and cast to type, with logging for type errors."""
    value = data_dict.get(key, default)
    if value is default and default is not None:
        return value
    if value is None:
        return None

    try:
        if target_type == bool:
            if isinstance(value, bool):
                return value
            return str(value).lower() in ['true', '1', 't', 'y', 'yes']
        if target_type == Path:
            return Path(value).expanduser() if value else default
        return target_type(value)
    except (ValueError, TypeError) as e:
        logger.warning(f"Config key '{key}' has value '{value}' which could not be converted to {target_type}. "
                       f"Using default: '{default}'. Error: {e}")
        return default


def ensure_default_config_exists(config_path: Optional[Union[str, Path]] = None) -> Path:
    """Writes the default configuration to `config_path` unless a file is already there."""
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    if path.exists():
        return path
    logger.info(f"Config file not found at {path}. Creating with default values.")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            toml.dump(DEFAULT_CONFIG, f)
        logger.info(f"Created default config file at {path}")
    except OSError as e:
        logger.error(f"Could not create default config file {path}: {e}. Using internal defaults.")
    return path


def _apply_env_overrides(settings: Dict[str, Any]) -> Dict[str, Any]:
    for section, key, env_var in ENV_OVERRIDES:
        value = os.getenv(env_var)
        if value:
            settings.setdefault(section, {})[key] = value
            logger.debug(f"Config override from {env_var}: [{section}] {key}")
    return settings


def load_settings(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Loads settings from a TOML file merged over the built-in defaults, then applies
    environment overrides.

    A missing file means defaults only. A file that fails to decode is logged and
    ignored; the defaults are used instead.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    loaded_config = copy.deepcopy(DEFAULT_CONFIG)

    if path.exists():
        logger.info(f"Attempting to load config from: {path}")
        try:
            with open(path, "rb") as f:
                user_config_from_file = tomllib.load(f)
            loaded_config = deep_merge_dicts(loaded_config, user_config_from_file)
            logger.info(f"Successfully loaded and merged config from {path}")
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Error decoding TOML config file {path}: {e}. Using internal defaults.")
        except OSError as e:
            logger.error(f"Could not read config file {path}: {e}. Using internal defaults.")
    else:
        logger.info(f"Config file not found at {path}. Using internal defaults.")

    loaded_config = _apply_env_overrides(loaded_config)
    logger.debug(f"load_settings returning config with top-level keys: {list(loaded_config.keys())}")
    return loaded_config


def get_setting(settings: Dict[str, Any], section: str, key: str, default: Any = None,
                target_type: type = str) -> Any:
    """Typed accessor for `settings[section][key]`."""
    section_data = settings.get(section)
    if not isinstance(section_data, dict):
        return default
    return _get_typed_value(section_data, key, default, target_type)


def get_queue_db_path(settings: Dict[str, Any]) -> Union[str, Path]:
    """Resolved queue database path, or the literal ":memory:" for an in-memory store."""
    default_db_path = str(BASE_DATA_DIR / "offline_sync_queue.db")
    db_path = get_setting(settings, "database", "queue_db_path", default_db_path)
    if db_path == ":memory:":
        return db_path
    return Path(db_path).expanduser().resolve()


def get_log_file_path(settings: Dict[str, Any]) -> Path:
    """Log file lives next to the queue database, or in the data dir for an in-memory store."""
    log_filename = get_setting(settings, "logging", "log_filename", "offline_sync.log")
    db_path = get_queue_db_path(settings)
    log_dir = BASE_DATA_DIR if db_path == ":memory:" else db_path.parent
    return log_dir / log_filename

#
# End of offline_sync/config.py
#######################################################################################################################
