"""Observability: in-process counters and timers, summarized once per run.

Counters in use: insights.extraction_cycles, insights.extraction_unavailable,
context.rollbacks, context.background_failures, signals.recorded,
signals.dropped.
"""

import time
from contextlib import contextmanager
from typing import Any

import structlog

logger = structlog.get_logger().bind(source="observability")


class Metrics:
    def __init__(self):
        self._counters: dict[str, int] = {}
        self._timers: dict[str, list[float]] = {}

    def counter(self, name: str, value: int = 1):
        self._counters[name] = self._counters.get(name, 0) + value

    def count(self, name: str) -> int:
        return self._counters.get(name, 0)

    @contextmanager
    def timer(self, name: str):
        """Record wall time of the block, including when it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self._timers.setdefault(name, []).append(time.perf_counter() - start)

    def summary(self) -> dict[str, Any]:
        timers = {
            name: {
                "count": len(durations),
                "avg_ms": round(1000 * sum(durations) / len(durations), 1),
                "max_ms": round(1000 * max(durations), 1),
            }
            for name, durations in self._timers.items()
            if durations
        }
        return {"counters": dict(self._counters), "timers": timers}

    def reset(self):
        self._counters.clear()
        self._timers.clear()


# Module-level singleton
metrics = Metrics()


def log_run_summary():
    """Log collected metrics via structlog. Silent when nothing was recorded."""
    summary = metrics.summary()
    if summary["counters"] or summary["timers"]:
        logger.info("run_summary", **summary)
