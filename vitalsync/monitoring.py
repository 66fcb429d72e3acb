"""
Prometheus metrics for the reconciliation engine.
"""

import logging
from typing import Optional

from prometheus_client import Counter, Gauge, CollectorRegistry, generate_latest

logger = logging.getLogger(__name__)


class EngineMetrics:
    """Collects poll, resolution, cache and directory metrics."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._setup_prometheus_metrics()

    def _setup_prometheus_metrics(self):
        """Initialize Prometheus metrics."""
        # Live poll metrics
        self.poll_fetches = Counter(
            'vitalsync_poll_fetches_total',
            'Latest-reading fetches issued by the live poll cache',
            ['outcome'],
            registry=self.registry
        )

        self.poll_cycles = Counter(
            'vitalsync_poll_cycles_total',
            'Completed live poll cycles',
            ['trigger'],
            registry=self.registry
        )

        self.active_poll_timers = Gauge(
            'vitalsync_active_poll_timers',
            'Running live poll timer tasks',
            registry=self.registry
        )

        # Vitals resolution metrics
        self.vitals_resolutions = Counter(
            'vitalsync_vitals_resolutions_total',
            'Current-vitals lookups by the strategy that answered',
            ['source'],
            registry=self.registry
        )

        # Prediction cache metrics
        self.prediction_cache_requests = Counter(
            'vitalsync_prediction_cache_requests_total',
            'Prediction cache lookups',
            ['result'],
            registry=self.registry
        )

        self.prediction_cache_evictions = Counter(
            'vitalsync_prediction_cache_evictions_total',
            'Prediction cache entries evicted as stale',
            registry=self.registry
        )

        # Directory metrics
        self.directory_refreshes = Counter(
            'vitalsync_directory_refreshes_total',
            'Directory refresh attempts',
            ['directory', 'outcome'],
            registry=self.registry
        )

    def record_poll_fetch(self, success: bool):
        self.poll_fetches.labels(outcome='success' if success else 'failure').inc()

    def record_poll_cycle(self, trigger: str):
        self.poll_cycles.labels(trigger=trigger).inc()

    def set_active_poll_timers(self, count: int):
        self.active_poll_timers.set(count)

    def record_vitals_resolution(self, source: str):
        self.vitals_resolutions.labels(source=source).inc()

    def record_prediction_lookup(self, hit: bool):
        self.prediction_cache_requests.labels(result='hit' if hit else 'miss').inc()

    def record_prediction_evictions(self, count: int):
        if count > 0:
            self.prediction_cache_evictions.inc(count)

    def record_directory_refresh(self, directory: str, success: bool):
        self.directory_refreshes.labels(
            directory=directory,
            outcome='success' if success else 'failure'
        ).inc()

    def export(self) -> bytes:
        """Prometheus exposition text for this registry."""
        return generate_latest(self.registry)
