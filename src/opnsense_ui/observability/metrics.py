"""Counters and timings for appliance page exchanges and provider verbs.

Two families are recorded:

* ``appliance_requests_total`` / ``appliance_request_duration_ms``, one per
  HTTP exchange with the web UI, tagged with method, page and status.
* ``reconciliation_total``, one per provider verb, tagged with the record
  kind, the verb and either ``success`` or the exception class name.

The in-process backend keeps everything in memory; the CLI logs a summary
when a command finishes.
"""

import math
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from typing import Any

import structlog

from .logger import log_verbose

logger = structlog.get_logger(__name__)


def metric_key(name: str, tags: dict[str, str] | None = None) -> str:
    """Flatten a metric name and its tags into ``name[k=v,...]`` with sorted tags."""
    if not tags:
        return name
    return name + "[" + ",".join(f"{k}={tags[k]}" for k in sorted(tags)) + "]"


@dataclass
class TimingStats:
    count: int = 0
    total: float = 0.0
    low: float = math.inf
    high: float = -math.inf

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.low = min(self.low, value)
        self.high = max(self.high, value)

    def as_dict(self) -> dict[str, float]:
        return {
            "count": self.count,
            "avg": self.total / self.count,
            "min": self.low,
            "max": self.high,
        }


class MetricsBackend(ABC):
    """Sink for counter increments and timing samples."""

    @abstractmethod
    def increment(self, name: str, value: int = 1, tags: dict[str, str] | None = None) -> None:
        pass

    @abstractmethod
    def timing(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        pass

    def get_summary(self) -> dict[str, Any]:
        return {}


class LoggerBackend(MetricsBackend):
    """In-memory backend whose summary is written to the log."""

    def __init__(self) -> None:
        self.counters: Counter[str] = Counter()
        self.timings: dict[str, TimingStats] = {}

    def increment(self, name: str, value: int = 1, tags: dict[str, str] | None = None) -> None:
        self.counters[metric_key(name, tags)] += value

    def timing(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self.timings.setdefault(metric_key(name, tags), TimingStats()).add(value)

    def get_summary(self) -> dict[str, Any]:
        return {
            "counters": dict(self.counters),
            "timings": {key: stats.as_dict() for key, stats in self.timings.items()},
        }


class MetricsCollector:
    """Domain-level recording API used by the session and the provider."""

    def __init__(self, backend: MetricsBackend | None = None) -> None:
        self.backend = backend if backend is not None else LoggerBackend()

    def count_request(self, method: str, page: str, status: int) -> None:
        self.backend.increment(
            "appliance_requests_total",
            tags={"method": method, "page": page, "status": str(status)},
        )

    def record_latency(self, method: str, duration_ms: float) -> None:
        self.backend.timing("appliance_request_duration_ms", duration_ms, tags={"method": method})

    def count_reconciliation(self, record_type: str, verb: str, outcome: str) -> None:
        """Record the outcome of one provider verb (``success`` or an exception name)."""
        self.backend.increment(
            "reconciliation_total",
            tags={"record": record_type, "verb": verb, "outcome": outcome},
        )

    def get_summary(self) -> dict[str, Any]:
        return self.backend.get_summary()

    def log_summary(self) -> None:
        summary = self.get_summary()
        if summary.get("counters") or summary.get("timings"):
            log_verbose(logger, "Metrics summary", **summary)


_GLOBAL_COLLECTOR: MetricsCollector | None = None


def get_global_collector() -> MetricsCollector:
    """Process-wide collector shared by every session and provider."""
    global _GLOBAL_COLLECTOR
    if _GLOBAL_COLLECTOR is None:
        _GLOBAL_COLLECTOR = MetricsCollector()
    return _GLOBAL_COLLECTOR
