"""
Result Store and Metrics Aggregator.

Keeps a bounded ring buffer of ProbeResults per check and derives rolling
SLA metrics from it. Metrics are recomputed from raw results every time
rather than maintained incrementally.
"""

from __future__ import annotations

import logging
import math
import statistics
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional

from uptime_core.core.models import Incident, ProbeResult, ServiceMetrics

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000
DAY_SECONDS = 86400.0


def percentile_nearest_rank(sorted_values: List[float], fraction: float) -> float:
    """
    Value at index ``floor(n * fraction)`` of an ascending list, clamped to
    the last element. Returns 0.0 for an empty list.

    Non-decreasing in ``fraction``, so p95 <= p99 always holds.
    """
    if not sorted_values:
        return 0.0
    index = min(int(math.floor(len(sorted_values) * fraction)), len(sorted_values) - 1)
    return sorted_values[index]


class ResultStore:
    """Per-check ring buffers of ProbeResults."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._results: Dict[str, Deque[ProbeResult]] = {}

    @property
    def capacity(self) -> int:
        return self._capacity

    def record(self, result: ProbeResult) -> None:
        buffer = self._results.get(result.check_id)
        if buffer is None:
            buffer = deque(maxlen=self._capacity)
            self._results[result.check_id] = buffer
        buffer.append(result)

    def results_for(self, check_id: str, since: Optional[float] = None) -> List[ProbeResult]:
        results = list(self._results.get(check_id, ()))
        if since is not None:
            results = [r for r in results if r.timestamp > since]
        return results

    def count(self, check_id: str) -> int:
        return len(self._results.get(check_id, ()))

    def discard(self, check_id: str) -> None:
        self._results.pop(check_id, None)

    def check_ids(self) -> List[str]:
        return list(self._results)

    def purge_older_than(self, cutoff: float) -> int:
        """Drop results with ``timestamp <= cutoff``. Returns how many went."""
        removed = 0
        for check_id, buffer in self._results.items():
            kept = [r for r in buffer if r.timestamp > cutoff]
            removed += len(buffer) - len(kept)
            if len(kept) != len(buffer):
                self._results[check_id] = deque(kept, maxlen=self._capacity)
        return removed


class MetricsAggregator:
    """
    Compute ServiceMetrics for a check.

    Uptime and latency come from the ProbeResults inside the metrics
    window; MTTR and MTBF come from the check's resolved incidents.
    """

    def __init__(self, store: ResultStore, window_seconds: float = DAY_SECONDS):
        self._store = store
        self.window_seconds = window_seconds

    def compute(
        self,
        check_id: str,
        now: float,
        incidents: Iterable[Incident] = (),
    ) -> ServiceMetrics:
        try:
            return self._compute(check_id, now, list(incidents))
        except Exception as e:
            logger.error(f"[Metrics] Failed to compute metrics for {check_id}: {e}")
            return ServiceMetrics()

    def _compute(self, check_id: str, now: float, incidents: List[Incident]) -> ServiceMetrics:
        results = self._store.results_for(check_id)
        window = [r for r in results if now - r.timestamp < self.window_seconds]

        successful = sum(1 for r in window if r.success)
        failed = len(window) - successful
        uptime = (successful / len(window)) * 100 if window else 100.0

        latencies = sorted(r.response_time for r in window if r.success)
        avg_latency = statistics.mean(latencies) if latencies else 0.0

        last_success = next((r.timestamp for r in reversed(results) if r.success), 0.0)
        last_failure = next((r.timestamp for r in reversed(results) if not r.success), 0.0)

        mttr, mtbf = self._reliability(incidents, now)

        return ServiceMetrics(
            uptime=uptime,
            availability=uptime,
            avg_response_time=avg_latency,
            response_time_p95=percentile_nearest_rank(latencies, 0.95),
            response_time_p99=percentile_nearest_rank(latencies, 0.99),
            total_checks=len(window),
            successful_checks=successful,
            failed_checks=failed,
            last_check=results[-1].timestamp if results else 0.0,
            last_success=last_success,
            last_failure=last_failure,
            mttr=mttr,
            mtbf=mtbf,
        )

    @staticmethod
    def _reliability(incidents: List[Incident], now: float) -> "tuple[float, float]":
        resolved = sorted(
            (i for i in incidents if not i.is_open and i.duration is not None),
            key=lambda i: i.start_time,
        )
        if not resolved:
            return 0.0, 0.0

        mttr = sum(i.duration for i in resolved) / len(resolved)
        # Simplified MTBF: span since the first failure spread over the gaps
        mtbf = (now - resolved[0].start_time) / (len(resolved) - 1) if len(resolved) > 1 else 0.0
        return mttr, mtbf
