"""Performance and sync health metrics for the Beaver API.

Collects and aggregates:
- API request metrics (duration, error rate)
- Targeted sync outcomes (graph sync warnings)
- Validation and repair outcomes
- Background job metrics
- System resource metrics
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Any

import psutil

logger = logging.getLogger(__name__)

# Process start time for uptime calculation
_start_time = time.time()
_process = psutil.Process()


@dataclass
class RequestMetrics:
    """Metrics for API requests."""

    total_requests: int = 0
    active_requests: int = 0
    total_duration_ms: float = 0.0
    error_count: int = 0
    durations: list[float] = field(default_factory=list)

    def record_request(self, duration_ms: float, is_error: bool = False) -> None:
        self.total_requests += 1
        self.total_duration_ms += duration_ms
        self.durations.append(duration_ms)
        if is_error:
            self.error_count += 1

        # Keep only last 1000 durations for percentile calculation
        if len(self.durations) > 1000:
            self.durations = self.durations[-1000:]

    def increment_active(self) -> None:
        self.active_requests += 1

    def decrement_active(self) -> None:
        self.active_requests = max(0, self.active_requests - 1)

    @property
    def avg_duration_ms(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_duration_ms / self.total_requests

    def percentile(self, fraction: float) -> float:
        if not self.durations:
            return 0.0
        sorted_durations = sorted(self.durations)
        idx = int(len(sorted_durations) * fraction)
        return sorted_durations[min(idx, len(sorted_durations) - 1)]

    @property
    def error_rate(self) -> float:
        """Error rate (0-1)."""
        if self.total_requests == 0:
            return 0.0
        return self.error_count / self.total_requests


@dataclass
class SyncMetrics:
    """Outcomes of targeted syncs, validations and repairs."""

    targeted_syncs: int = 0
    sync_warnings: int = 0
    validations: int = 0
    last_valid: bool | None = None
    last_discrepancies: int = 0
    repairs: int = 0
    repair_failures: int = 0

    def record_targeted_sync(self, sync_failed: bool) -> None:
        self.targeted_syncs += 1
        if sync_failed:
            self.sync_warnings += 1

    def record_validation(self, valid: bool, discrepancies: int) -> None:
        self.validations += 1
        self.last_valid = valid
        self.last_discrepancies = discrepancies

    def record_repair(self, fixed: bool) -> None:
        self.repairs += 1
        if not fixed:
            self.repair_failures += 1


@dataclass
class JobMetrics:
    """Metrics for background jobs."""

    active_jobs: int = 0
    completed_jobs: int = 0
    failed_jobs: int = 0

    def increment_active(self) -> None:
        self.active_jobs += 1

    def record_completion(self, success: bool = True) -> None:
        self.active_jobs = max(0, self.active_jobs - 1)
        if success:
            self.completed_jobs += 1
        else:
            self.failed_jobs += 1


class MetricsCollector:
    """Central metrics collector for the Beaver API.

    Thread-safe singleton shared by the request middleware, the routes
    and background job threads.
    """

    _instance: "MetricsCollector | None" = None
    _lock: Lock = Lock()

    def __new__(cls) -> "MetricsCollector":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return

        self._initialized = True
        self._lock = Lock()

        self.request_metrics = RequestMetrics()
        self.sync_metrics = SyncMetrics()
        self.job_metrics = JobMetrics()
        self.endpoint_metrics: dict[str, RequestMetrics] = defaultdict(RequestMetrics)

        logger.info("MetricsCollector initialized")

    def record_request(
        self,
        method: str,
        path: str,
        duration_ms: float,
        status_code: int,
    ) -> None:
        with self._lock:
            is_error = status_code >= 400
            self.request_metrics.record_request(duration_ms, is_error)
            self.endpoint_metrics[f"{method} {path}"].record_request(duration_ms, is_error)

    def increment_active_requests(self) -> None:
        with self._lock:
            self.request_metrics.increment_active()

    def decrement_active_requests(self) -> None:
        with self._lock:
            self.request_metrics.decrement_active()

    def record_targeted_sync(self, sync_failed: bool) -> None:
        with self._lock:
            self.sync_metrics.record_targeted_sync(sync_failed)

    def record_validation(self, valid: bool, discrepancies: int) -> None:
        with self._lock:
            self.sync_metrics.record_validation(valid, discrepancies)

    def record_repair(self, fixed: bool) -> None:
        with self._lock:
            self.sync_metrics.record_repair(fixed)

    def increment_active_jobs(self) -> None:
        with self._lock:
            self.job_metrics.increment_active()

    def record_job_completion(self, success: bool = True) -> None:
        with self._lock:
            self.job_metrics.record_completion(success)

    def get_metrics(self) -> dict[str, Any]:
        """Get current metrics snapshot."""
        with self._lock:
            try:
                memory_mb = _process.memory_info().rss / 1024 / 1024
            except psutil.Error:
                memory_mb = 0.0

            sync = self.sync_metrics
            return {
                "total_requests": self.request_metrics.total_requests,
                "active_requests": self.request_metrics.active_requests,
                "avg_request_duration_ms": self.request_metrics.avg_duration_ms,
                "p95_request_duration_ms": self.request_metrics.percentile(0.95),
                "p99_request_duration_ms": self.request_metrics.percentile(0.99),
                "error_rate": self.request_metrics.error_rate,
                "total_errors": self.request_metrics.error_count,
                "targeted_syncs": sync.targeted_syncs,
                "sync_warnings": sync.sync_warnings,
                "validations": sync.validations,
                "last_validation_valid": sync.last_valid,
                "last_validation_discrepancies": sync.last_discrepancies,
                "repairs": sync.repairs,
                "repair_failures": sync.repair_failures,
                "active_jobs": self.job_metrics.active_jobs,
                "completed_jobs": self.job_metrics.completed_jobs,
                "failed_jobs": self.job_metrics.failed_jobs,
                "uptime_seconds": time.time() - _start_time,
                "memory_usage_mb": memory_mb,
            }

    def get_endpoint_metrics(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {
                endpoint: {
                    "total_requests": m.total_requests,
                    "avg_duration_ms": m.avg_duration_ms,
                    "p95_duration_ms": m.percentile(0.95),
                    "error_rate": m.error_rate,
                }
                for endpoint, m in self.endpoint_metrics.items()
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self.request_metrics = RequestMetrics()
            self.sync_metrics = SyncMetrics()
            self.job_metrics = JobMetrics()
            self.endpoint_metrics.clear()
            logger.info("Metrics reset")


def get_metrics_collector() -> MetricsCollector:
    """Get the singleton MetricsCollector instance."""
    return MetricsCollector()
