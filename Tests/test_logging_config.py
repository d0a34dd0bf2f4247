# test_logging_config.py
#
# Imports
import json
import sys
#
# Third-Party Imports
import pytest
from loguru import logger
#
# Local Imports
from offline_sync import config
from offline_sync.Logging_Config import configure_logging, json_formatter
from offline_sync.Metrics.metrics_logger import MetricsLogger
#
#######################################################################################################################
#
# Tests

@pytest.fixture(autouse=True)
def restore_default_sink():
    yield
    logger.remove()
    logger.add(sys.stderr)


def settings_with(**logging_overrides):
    return config.deep_merge_dicts(config.DEFAULT_CONFIG, {"logging": logging_overrides})


def test_console_and_file_sinks(tmp_path):
    log_path = tmp_path / "logs" / "client.log"

    handler_ids = configure_logging(settings_with(), log_file_path=log_path)
    logger.info("hello from the sync client")
    for handler_id in handler_ids:
        logger.remove(handler_id)

    assert len(handler_ids) == 2
    assert "hello from the sync client" in log_path.read_text(encoding="utf-8")


def test_metrics_sink_only_receives_metrics(tmp_path):
    log_path = tmp_path / "client.log"

    handler_ids = configure_logging(settings_with(metrics_enabled=True, metrics_filename="metrics.json"),
                                    log_file_path=log_path)
    logger.info("not a metric")
    MetricsLogger({"table": "todoitem"}).log_counter("sync_conflicts_total", 3)
    for handler_id in handler_ids:
        logger.remove(handler_id)

    assert len(handler_ids) == 3
    lines = (tmp_path / "metrics.json").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    entry = json.loads(lines[0])
    assert entry["event"] == "sync_conflicts_total"
    assert entry["value"] == 3
    assert entry["labels"] == {"table": "todoitem"}


def test_json_formatter_escapes_braces():
    captured = []
    handler_id = logger.add(lambda message: captured.append(message.record), level="DEBUG")
    logger.bind(event="e", type="gauge", value=1, labels={"k": "v"}, timestamp="now").debug("m")
    logger.remove(handler_id)

    formatted = json_formatter(captured[0])

    assert formatted.endswith("\n")
    assert "{{" in formatted and "}}" in formatted
    assert json.loads(formatted.replace("{{", "{").replace("}}", "}"))["labels"] == {"k": "v"}

#
# End of test_logging_config.py
#######################################################################################################################
