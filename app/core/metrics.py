"""Process-local metrics: per-route latency/status and storefront event counters.

Counters in use: ``orders_created``, ``stock_conflicts``,
``discount_redemptions``, ``discount_redemption_conflicts`` and
``follow_up_failed.<action>``.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from threading import Lock


@dataclass
class EndpointMetric:
    total_requests: int = 0
    total_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    client_errors: int = 0
    server_errors: int = 0

    def record(self, status_code: int, duration_ms: float) -> None:
        self.total_requests += 1
        self.total_duration_ms += duration_ms
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)
        if status_code >= 500:
            self.server_errors += 1
        elif status_code >= 400:
            self.client_errors += 1

    def as_dict(self) -> dict[str, float | int]:
        avg = self.total_duration_ms / self.total_requests if self.total_requests else 0.0
        return {
            "total_requests": self.total_requests,
            "avg_duration_ms": round(avg, 2),
            "max_duration_ms": round(self.max_duration_ms, 2),
            "client_errors": self.client_errors,
            "server_errors": self.server_errors,
        }


class InMemoryRequestMetrics:
    def __init__(self) -> None:
        self._endpoints: dict[str, EndpointMetric] = {}
        self._counters: Counter[str] = Counter()
        self._lock = Lock()

    def observe(self, endpoint: str, method: str, status_code: int, duration_ms: float) -> None:
        with self._lock:
            self._endpoints.setdefault(f"{method} {endpoint}", EndpointMetric()).record(status_code, duration_ms)

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[name] += amount

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {key: metric.as_dict() for key, metric in sorted(self._endpoints.items())}

    def counters(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def reset(self) -> None:
        with self._lock:
            self._endpoints.clear()
            self._counters.clear()


request_metrics = InMemoryRequestMetrics()
