"""Structured cycle events and CSV gauges for the pool engine.

* ``log_event`` writes one JSON document per log line so a cycle's outcome
  (pool counts, oracle coverage, failures) can be grepped or shipped as-is.
* ``record_metric`` appends ``ts,metric,value,labels`` rows to ``METRICS_PATH``.
* ``timed`` measures a block and records its duration as a gauge.

Metric writes never raise into the caller.
"""
from __future__ import annotations

import csv
import json
import logging
import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping, MutableMapping, Optional

_OBSERVABILITY_LOGGER = logging.getLogger("observability")

_METRIC_FIELDS = ("ts", "metric", "value", "labels")


def _json_safe(value: Any) -> Any:
    try:
        json.dumps(value)
        return value
    except TypeError:
        return repr(value)


def log_event(logger: Optional[logging.Logger], event: str, **fields: Any) -> None:
    """Emit ``event`` with ``fields`` as a sorted JSON log line."""

    payload: MutableMapping[str, Any] = {"event": event, "ts": round(time.time(), 3)}
    payload.update({key: _json_safe(value) for key, value in fields.items()})
    (logger or _OBSERVABILITY_LOGGER).info(json.dumps(payload, sort_keys=True))


class CsvMetricsSink:
    """Append-only CSV gauge recorder guarded by a lock."""

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = Path(path or os.getenv("METRICS_PATH", "metrics.csv"))
        self._lock = threading.Lock()

    def record(self, metric: str, value: float, *, labels: Optional[Mapping[str, Any]] = None) -> None:
        row = {
            "ts": f"{time.time():.3f}",
            "metric": metric,
            "value": f"{float(value):.6f}",
            "labels": json.dumps(dict(labels or {}), sort_keys=True),
        }
        with self._lock:
            write_header = not self.path.exists()
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", newline="") as handle:
                writer = csv.DictWriter(handle, fieldnames=_METRIC_FIELDS)
                if write_header:
                    writer.writeheader()
                writer.writerow(row)


_metrics_sink = CsvMetricsSink()


def set_metrics_path(path: str | os.PathLike[str]) -> None:
    """Redirect subsequent metrics to ``path``."""

    global _metrics_sink
    _metrics_sink = CsvMetricsSink(str(path))


def record_metric(metric: str, value: float, *, labels: Optional[Mapping[str, Any]] = None) -> None:
    """Record a numeric metric to the CSV sink."""

    try:
        _metrics_sink.record(metric, value, labels=labels)
    except Exception:
        _OBSERVABILITY_LOGGER.debug("Failed to record metric %s", metric, exc_info=True)


@contextmanager
def timed(metric: str, **labels: Any) -> Iterator[None]:
    """Record the wall time of the wrapped block under ``metric``."""

    start = time.perf_counter()
    try:
        yield
    finally:
        record_metric(metric, time.perf_counter() - start, labels=labels)


__all__ = ["CsvMetricsSink", "log_event", "record_metric", "set_metrics_path", "timed"]
