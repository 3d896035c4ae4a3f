from __future__ import annotations

import statistics
from dataclasses import dataclass

"""Timing metrics for records stream writes.

``TransferMetrics`` is handed to the optional ``metrics_callback`` of
``api.records.write_records``; ``TransferStatsAccumulator`` folds a series
of them into summary numbers.
"""

__all__ = [
    "TransferMetrics",
    "TransferStatsAccumulator",
]


@dataclass(frozen=True)
class TransferMetrics:
    """Metrics for a single request against the records endpoint."""
    rows: int  # 送受信した行数
    payload_bytes: int  # body サイズ (受信時は 0 の場合あり)
    elapsed_seconds: float
    start_time: float  # time.time()
    end_time: float  # time.time()


class TransferStatsAccumulator:
    """Collects TransferMetrics and computes count / average / p95 timings."""

    def __init__(self) -> None:
        self.times: list[float] = []
        self.rows = 0

    def add(self, metrics: TransferMetrics) -> None:
        self.times.append(metrics.elapsed_seconds)
        self.rows += metrics.rows

    def get_stats(self) -> tuple[int, float, float]:
        """Return (total_requests, avg_seconds, p95_seconds)."""
        if not self.times:
            return (0, 0.0, 0.0)

        total = len(self.times)
        avg = statistics.mean(self.times)
        if total == 1:
            p95 = self.times[0]
        else:
            # 20 分位の 19 番目 = p95
            p95 = statistics.quantiles(self.times, n=20, method="inclusive")[18]
        return (total, avg, p95)
