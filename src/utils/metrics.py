"""
In-process metrics for the billing service.

Request latency and status codes come from the request logging middleware;
webhook, checkout and payout counts from the billing routes. Snapshots are
emitted through loguru so they land in the structured log stream.
"""

import threading
from collections import Counter, deque
from typing import Deque, Dict, Sequence

from loguru import logger

# Latency samples kept for percentiles
LATENCY_WINDOW = 10_000


def _percentile(ordered: Sequence[float], fraction: float) -> float:
    return ordered[min(int(len(ordered) * fraction), len(ordered) - 1)]


class MetricsCollector:
    """Thread-safe counters, reset when the process restarts."""

    def __init__(self, latency_window: int = LATENCY_WINDOW):
        self._lock = threading.Lock()
        self._latencies: Deque[float] = deque(maxlen=latency_window)
        self._status_codes: Counter = Counter()
        self._webhook_events: Counter = Counter()
        self._checkouts: Counter = Counter()
        self._payouts = 0

    # Recording

    def record_request(self, method: str, path: str, status_code: int, latency_ms: float):
        with self._lock:
            self._latencies.append(latency_ms)
            self._status_codes[str(status_code)] += 1

    def record_webhook_event(self, event_type: str):
        with self._lock:
            self._webhook_events[event_type] += 1

    def record_checkout(self, kind: str):
        """Count a checkout link handed out ("subscription" or "marketplace")."""
        with self._lock:
            self._checkouts[kind] += 1

    def record_payout(self):
        with self._lock:
            self._payouts += 1

    # Reading

    @property
    def checkouts(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._checkouts)

    def get_percentiles(self) -> Dict[str, float]:
        with self._lock:
            ordered = sorted(self._latencies)
        if not ordered:
            return {"p50": 0, "p95": 0, "p99": 0}
        return {
            "p50": _percentile(ordered, 0.50),
            "p95": _percentile(ordered, 0.95),
            "p99": _percentile(ordered, 0.99),
        }

    def get_error_rate(self) -> float:
        """Share of 4xx/5xx responses, in percent."""
        with self._lock:
            total = sum(self._status_codes.values())
            errors = sum(n for code, n in self._status_codes.items() if int(code) >= 400)
        return (errors / total) * 100 if total else 0.0

    def get_business_metrics(self) -> Dict:
        with self._lock:
            return {
                "webhook_events": dict(self._webhook_events),
                "checkouts": dict(self._checkouts),
                "payouts": self._payouts,
            }

    def log_metrics(self) -> Dict:
        """Log a snapshot of every metric and return it."""
        with self._lock:
            status_codes = dict(self._status_codes)
        snapshot = {
            "request_metrics": {
                "latency_percentiles": self.get_percentiles(),
                "error_rate": self.get_error_rate(),
                "status_codes": status_codes,
            },
            "business_metrics": self.get_business_metrics(),
        }
        logger.bind(metrics=snapshot).info("Metrics snapshot")
        return snapshot


_collector: MetricsCollector = None
_collector_lock = threading.Lock()


def get_metrics_collector() -> MetricsCollector:
    """Process-wide collector."""
    global _collector
    if _collector is None:
        with _collector_lock:
            if _collector is None:
                _collector = MetricsCollector()
    return _collector
