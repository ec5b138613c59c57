"""Counters, timings and the execution audit log."""
from __future__ import annotations

import logging
import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

Labels = Optional[Dict[str, str]]

NO_LABELS = "-"


def labels_key(labels: Labels) -> str:
    """``{"b": 1, "a": 2}`` -> ``"a=2,b=1"``; the key used in snapshots."""
    if not labels:
        return NO_LABELS
    return ",".join(f"{name}={labels[name]}" for name in sorted(labels))


class MetricsRecorder:
    """
    Process-local metrics.

    Counters (executions started and finished per workflow, action outcomes
    per action type, lost compare-and-swap races, HTTP requests) and timings
    (action calls, HTTP requests). The monitoring API exposes ``snapshot()``.
    """

    def __init__(self) -> None:
        self._counters: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
        self._timings: Dict[str, Dict[str, List[float]]] = defaultdict(lambda: defaultdict(list))

    def inc(self, name: str, labels: Labels = None, value: float = 1) -> None:
        self._counters[name][labels_key(labels)] += value

    def observe(self, name: str, seconds: float, labels: Labels = None) -> None:
        self._timings[name][labels_key(labels)].append(seconds)

    @contextmanager
    def timer(self, name: str, labels: Labels = None) -> Iterator[None]:
        """Observe the wall time of the block, whether it raises or not."""
        started = time.perf_counter()
        try:
            yield
        finally:
            self.observe(name, time.perf_counter() - started, labels)

    def get_counter(self, name: str, labels: Labels = None) -> float:
        series = self._counters.get(name)
        return series.get(labels_key(labels), 0.0) if series else 0.0

    def total(self, name: str) -> float:
        return sum(self._counters.get(name, {}).values())

    def snapshot(self) -> Dict[str, Any]:
        timings = {}
        for name, series in self._timings.items():
            timings[name] = {
                key: {"count": len(values), "sum": sum(values), "max": max(values)}
                for key, values in series.items()
            }
        return {
            "counters": {name: dict(series) for name, series in self._counters.items()},
            "timings": timings,
        }


class EventLogger:
    """Audit trail of execution transitions on the ``automation.events`` logger."""

    def __init__(self, logger_name: str = "automation.events") -> None:
        self.logger = logging.getLogger(logger_name)

    def log(self, event: str, **fields: Any) -> None:
        rendered = " ".join(f"{name}={value}" for name, value in fields.items() if value is not None)
        self.logger.info(f"{event} {rendered}".rstrip(), extra={"audit": fields})
