"""
Process-wide cost and coverage counters.

Every transaction is counted exactly once under one of: cache hit,
reference hit, AI classification or fallback.
"""
import threading
from dataclasses import asdict, dataclass
from typing import Any, Dict


@dataclass
class CostStats:
    """Snapshot of the running counters."""
    total_processed: int = 0
    cache_hits: int = 0
    reference_hits: int = 0
    ai_calls_made: int = 0
    fallback_count: int = 0
    llm_requests: int = 0
    failed_llm_requests: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    total_cost: float = 0.0
    total_processing_time_ms: float = 0.0
    total_llm_latency_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        processed = self.total_processed
        zero_cost = self.cache_hits + self.reference_hits
        data["cache_hit_rate"] = self.cache_hits / processed if processed else 0.0
        data["reference_coverage"] = self.reference_hits / processed if processed else 0.0
        data["zero_cost_rate"] = zero_cost / processed if processed else 0.0
        data["average_cost_per_transaction"] = self.total_cost / processed if processed else 0.0
        return data


class CostStatsTracker:
    """Lock-guarded counters shared across requests."""

    def __init__(self):
        self._lock = threading.Lock()
        self._stats = CostStats()

    def record_cache_hit(self, count: int = 1) -> None:
        with self._lock:
            self._stats.cache_hits += count
            self._stats.total_processed += count

    def record_reference_hit(self, count: int = 1) -> None:
        with self._lock:
            self._stats.reference_hits += count
            self._stats.total_processed += count

    def record_ai_result(self, count: int = 1) -> None:
        with self._lock:
            self._stats.ai_calls_made += count
            self._stats.total_processed += count

    def record_fallback(self, count: int = 1) -> None:
        with self._lock:
            self._stats.fallback_count += count
            self._stats.total_processed += count

    def record_llm_request(
        self,
        input_tokens: int,
        output_tokens: int,
        cost: float,
        latency_ms: float,
        success: bool = True,
    ) -> None:
        """Account for one external call."""
        with self._lock:
            self._stats.llm_requests += 1
            if not success:
                self._stats.failed_llm_requests += 1
            self._stats.input_tokens += max(0, int(input_tokens))
            self._stats.output_tokens += max(0, int(output_tokens))
            self._stats.total_cost += max(0.0, cost)
            self._stats.total_llm_latency_ms += max(0.0, latency_ms)

    def record_processing_time(self, elapsed_ms: float) -> None:
        with self._lock:
            self._stats.total_processing_time_ms += max(0.0, elapsed_ms)

    def snapshot(self) -> CostStats:
        """Return a copy of the current counters."""
        with self._lock:
            return CostStats(**asdict(self._stats))

    def reset(self) -> None:
        with self._lock:
            self._stats = CostStats()
