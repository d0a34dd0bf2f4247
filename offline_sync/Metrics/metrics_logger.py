# metrics_logger.py
# Description: Structured sync metrics emitted as loguru records at a dedicated METRIC level.
#
# Imports
import functools
import inspect
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Union
#
# Third-party Imports
from loguru import logger
#
# Local Imports
#
############################################################################################################
#
# Functions:

Labels = Dict[str, Union[str, int, float, bool]]

# Sits between INFO and WARNING so the JSON sink can select metrics by level alone.
METRIC_LEVEL_NAME = "METRIC"
try:
    logger.level(METRIC_LEVEL_NAME)
except ValueError:
    logger.level(METRIC_LEVEL_NAME, no=25, color="<blue>")

COUNTER = "counter"
GAUGE = "gauge"
HISTOGRAM = "histogram"


def _emit(event: str, metric_type: str, value: Any, labels: Optional[Mapping[str, Any]] = None) -> None:
    """Binds one metric as flat `extra` fields and logs it at METRIC level."""
    logger.bind(
        event=event,
        type=metric_type,
        value=value,
        labels=dict(labels or {}),
        timestamp=datetime.now(timezone.utc).isoformat(),
    ).log(METRIC_LEVEL_NAME, f"{metric_type} {event}={value}")


def timeit(metric_name: Optional[str] = None, labels: Optional[Labels] = None,
           log_summary: bool = True, log_call_count: bool = False):
    """
    Times a coroutine function (or a plain one) and logs a duration histogram.

    The histogram carries `function` and `status` ("success" / "failure") labels.
    With `log_call_count`, a `<function>_calls_total` counter is logged per call too.
    """

    def decorator(func: Callable) -> Callable:
        event = metric_name or f"{func.__name__}_duration_seconds"
        fixed_labels = {"function": func.__name__, **(labels or {})}

        def _record(started: float, status: str) -> None:
            duration = time.perf_counter() - started
            call_labels = {**fixed_labels, "status": status}
            _emit(event, HISTOGRAM, duration, call_labels)
            if log_call_count:
                _emit(f"{func.__name__}_calls_total", COUNTER, 1, call_labels)
            if log_summary:
                logger.debug(f"{func.__qualname__} took {duration:.4f}s ({status})")

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def timed_coroutine(*args, **kwargs):
                started, status = time.perf_counter(), "success"
                try:
                    return await func(*args, **kwargs)
                except Exception:
                    status = "failure"
                    raise
                finally:
                    _record(started, status)

            return timed_coroutine

        @functools.wraps(func)
        def timed_function(*args, **kwargs):
            started, status = time.perf_counter(), "success"
            try:
                return func(*args, **kwargs)
            except Exception:
                status = "failure"
                raise
            finally:
                _record(started, status)

        return timed_function

    return decorator


class MetricsLogger:
    """Emits metrics that all share a set of base labels, e.g. the synced table."""

    def __init__(self, base_labels: Optional[Labels] = None):
        self.base_labels: Labels = dict(base_labels or {})

    def _labels(self, extra: Optional[Labels]) -> Labels:
        return {**self.base_labels, **(extra or {})}

    def log_counter(self, name: str, value: int = 1, labels: Optional[Labels] = None) -> None:
        _emit(name, COUNTER, value, self._labels(labels))

    def log_gauge(self, name: str, value: float, labels: Optional[Labels] = None) -> None:
        _emit(name, GAUGE, value, self._labels(labels))

    def log_histogram(self, name: str, value: float, labels: Optional[Labels] = None) -> None:
        _emit(name, HISTOGRAM, value, self._labels(labels))

#
# End of metrics_logger.py
############################################################################################################
