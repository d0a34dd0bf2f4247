# test_metrics_logger.py
#
# Imports
#
# Third-Party Imports
import pytest
from loguru import logger
#
# Local Imports
from offline_sync.Metrics.metrics_logger import METRIC_LEVEL_NAME, MetricsLogger, timeit
#
#######################################################################################################################
#
# Tests

@pytest.fixture
def captured_metrics():
    records = []
    handler_id = logger.add(lambda message: records.append(message.record["extra"]), level=METRIC_LEVEL_NAME,
                            filter=lambda record: record["level"].name == METRIC_LEVEL_NAME)
    yield records
    logger.remove(handler_id)


def test_metrics_logger_merges_base_labels(captured_metrics):
    metrics = MetricsLogger(base_labels={"table": "todoitem"})

    metrics.log_counter("sync_conflicts_total", 2, labels={"phase": "push"})
    metrics.log_gauge("sync_pending_operations", 5)

    assert [m["event"] for m in captured_metrics] == ["sync_conflicts_total", "sync_pending_operations"]
    assert captured_metrics[0]["type"] == "counter"
    assert captured_metrics[0]["value"] == 2
    assert captured_metrics[0]["labels"] == {"table": "todoitem", "phase": "push"}
    assert captured_metrics[1]["labels"] == {"table": "todoitem"}


def test_call_labels_do_not_leak_into_base_labels(captured_metrics):
    metrics = MetricsLogger(base_labels={"table": "todoitem"})
    metrics.log_histogram("latency", 0.1, labels={"status": "failure"})
    metrics.log_histogram("latency", 0.2)
    assert captured_metrics[1]["labels"] == {"table": "todoitem"}


@pytest.mark.asyncio
async def test_timeit_wraps_coroutines(captured_metrics):
    @timeit("fetch_duration_seconds", log_call_count=True)
    async def fetch(value):
        return value * 2

    assert await fetch(21) == 42
    events = {m["event"]: m for m in captured_metrics}
    assert events["fetch_duration_seconds"]["labels"] == {"function": "fetch", "status": "success"}
    assert events["fetch_calls_total"]["value"] == 1


@pytest.mark.asyncio
async def test_timeit_marks_failures(captured_metrics):
    @timeit()
    async def explode():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await explode()
    assert captured_metrics[0]["event"] == "explode_duration_seconds"
    assert captured_metrics[0]["labels"]["status"] == "failure"


def test_timeit_wraps_plain_functions(captured_metrics):
    @timeit(labels={"component": "test"}, log_summary=False)
    def add(a, b):
        return a + b

    assert add(1, 2) == 3
    assert captured_metrics[0]["labels"] == {"function": "add", "component": "test", "status": "success"}

#
# End of test_metrics_logger.py
#######################################################################################################################
