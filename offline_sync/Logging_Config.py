# Logging_Config.py
# Description: Configuration for logging
#
# Imports
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
#
# 3rd-Party Imports
from loguru import logger
from textual.app import App
from textual.logging import TextualHandler
#
# Local Imports
from offline_sync.config import get_log_file_path, get_setting
from offline_sync.Metrics.metrics_logger import METRIC_LEVEL_NAME
#
########################################################################################################################
#
# Functions:

CONSOLE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"

# Chatty third-party std loggers
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def _ensure_log_dir_exists(file_path: Path) -> Path:
    """Ensure the directory for the log file exists."""
    expanded_path = Path(file_path).expanduser()
    expanded_path.parent.mkdir(parents=True, exist_ok=True)
    return expanded_path


def json_formatter(record) -> str:
    """
    Flat JSON line for a METRIC record; see metrics_logger._emit for the bound fields.
    """
    extra = record["extra"]

    def serialize(value):
        if isinstance(value, datetime):
            return value.isoformat()
        return value

    log_record = {
        "time": record["time"].strftime("%Y-%m-%d %H:%M:%S.%f"),
        "levelname": record["level"].name,
        "name": record["name"],
        "message": record["message"],
        "event": extra.get("event"),
        "type": extra.get("type"),
        "value": extra.get("value"),
        "labels": extra.get("labels"),
        "timestamp": serialize(extra.get("timestamp")),
    }
    # Loguru treats the returned string as a format template, so braces are escaped.
    return json.dumps(log_record, default=str).replace("{", "{{").replace("}", "}}") + "\n"


def _is_metric(record) -> bool:
    return record["level"].name == METRIC_LEVEL_NAME


def configure_logging(settings: Dict[str, Any], app: Optional[App] = None,
                      log_file_path: Optional[Path] = None) -> List[int]:
    """
    Replaces loguru's default sink with the client's sinks.

    - Console: stderr, or Textual's dev console through `TextualHandler` when an app is given.
    - File: rotating text log next to the queue database (`[logging] log_filename`).
    - Metrics: optional JSON-lines sink that only receives METRIC records.

    Returns:
        The loguru handler ids, so callers (and tests) can remove them again.
    """
    logger.remove()
    handler_ids: List[int] = []

    console_level = str(get_setting(settings, "general", "log_level", "INFO")).upper()
    if app is not None:
        handler_ids.append(logger.add(TextualHandler(), level=console_level, format="{message}"))
    else:
        handler_ids.append(logger.add(sys.stderr, level=console_level, format=CONSOLE_FORMAT))

    file_path = log_file_path or get_log_file_path(settings)
    try:
        path = _ensure_log_dir_exists(file_path)
        handler_ids.append(logger.add(
            str(path),
            level=str(get_setting(settings, "logging", "file_log_level", "DEBUG")).upper(),
            format=FILE_FORMAT,
            rotation=get_setting(settings, "logging", "log_rotation", "10 MB"),
            retention=get_setting(settings, "logging", "log_retention", "7 days"),
            enqueue=True,
            backtrace=True,
            diagnose=False,
        ))
        logger.info(f"Application logs will be written to: {path}")
    except OSError as e:
        logger.warning(f"Could not set up file logging at {file_path}: {e}")

    if get_setting(settings, "logging", "metrics_enabled", False, bool):
        metrics_path = Path(file_path).parent / get_setting(settings, "logging", "metrics_filename",
                                                            "offline_sync_metrics.json")
        try:
            path = _ensure_log_dir_exists(metrics_path)
            handler_ids.append(logger.add(
                str(path),
                level=METRIC_LEVEL_NAME,
                filter=_is_metric,
                format=json_formatter,
                rotation="10 MB",
                retention=5,
                enqueue=True,
            ))
            logger.info(f"JSON metrics logs will be written to: {path}")
        except OSError as e:
            logger.warning(f"Could not set up metrics logging at {metrics_path}: {e}")

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug(f"Logging configured with {len(handler_ids)} sink(s).")
    return handler_ids

#
# End of Logging_Config.py
########################################################################################################################
