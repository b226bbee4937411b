"""
web2rep/metrics.py

Prometheus metrics collection for web2rep.

Exposes cache, rate limiter, aggregation and request latency figures in the
Prometheus text format.
"""

import time
import logging
from typing import TYPE_CHECKING, Dict, Any

from . import __version__

if TYPE_CHECKING:
    from .service import AchievementService

logger = logging.getLogger("web2rep.metrics")


class MetricsCollector:
    """
    Prometheus metrics collector for web2rep.

    Usage:
        metrics = MetricsCollector(service)
        metrics.record_request(0.012)
        prometheus_output = metrics.collect()
    """

    # Metric definitions
    METRICS = {
        "web2rep_cache_entries": {
            "type": "gauge",
            "help": "Number of cached aggregate results",
        },
        "web2rep_cache_hits_total": {
            "type": "counter",
            "help": "Fetches served from cache",
        },
        "web2rep_cache_misses_total": {
            "type": "counter",
            "help": "Fetches that called upstream",
        },
        "web2rep_rate_limited_total": {
            "type": "counter",
            "help": "Fetches skipped by the rate limiter",
        },
        "web2rep_upstream_errors_total": {
            "type": "counter",
            "help": "Aggregate fetches that failed",
        },
        "web2rep_aggregations_total": {
            "type": "counter",
            "help": "Aggregate results computed",
        },
        "web2rep_provider_failures_total": {
            "type": "counter",
            "help": "Provider fetches that failed or timed out",
        },
        "web2rep_requests_total": {
            "type": "counter",
            "help": "HTTP requests handled",
        },
        "web2rep_request_latency_seconds": {
            "type": "histogram",
            "help": "HTTP request latency in seconds",
            "buckets": [0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
        },
        "web2rep_uptime_seconds": {
            "type": "counter",
            "help": "Process uptime in seconds",
        },
    }

    def __init__(self, service: "AchievementService"):
        """
        Initialize metrics collector.

        Args:
            service: AchievementService to collect metrics from
        """
        self.service = service
        self._start_time = time.time()

        # Counters (persist across collections)
        self._requests = 0

        # Histogram buckets for latency
        self._latency_buckets = self.METRICS["web2rep_request_latency_seconds"]["buckets"]
        self._latency_counts = {b: 0 for b in self._latency_buckets}
        self._latency_counts[float('inf')] = 0
        self._latency_sum = 0.0
        self._latency_count = 0

    def record_request(self, latency_seconds: float) -> None:
        """Record one handled HTTP request."""
        self._requests += 1
        self._latency_sum += latency_seconds
        self._latency_count += 1

        # Update bucket counts
        for bucket in self._latency_buckets:
            if latency_seconds <= bucket:
                self._latency_counts[bucket] += 1
                break
        else:
            self._latency_counts[float('inf')] += 1

    def collect(self) -> str:
        """
        Collect all metrics and return in Prometheus format.

        Returns:
            Prometheus-formatted metrics string
        """
        lines = []

        def add_metric(name: str, value: float, labels: Dict[str, str] = None, header: bool = True):
            metric_def = self.METRICS.get(name, {})
            if header:
                lines.append(f"# HELP {name} {metric_def.get('help', '')}")
                lines.append(f"# TYPE {name} {metric_def.get('type', 'gauge')}")

            if labels:
                label_str = ",".join(f'{k}="{v}"' for k, v in labels.items())
                lines.append(f"{name}{{{label_str}}} {value}")
            else:
                lines.append(f"{name} {value}")

        try:
            cache_stats = self.service.cache.stats()
            add_metric("web2rep_cache_entries", cache_stats["entries"])
            add_metric("web2rep_cache_hits_total", cache_stats["hits"])
            add_metric("web2rep_cache_misses_total", cache_stats["misses"])
            add_metric("web2rep_rate_limited_total", cache_stats["throttled"])
            add_metric("web2rep_upstream_errors_total", cache_stats["errors"])

            add_metric("web2rep_aggregations_total", self.service.aggregations)

            failures = self.service.provider_failures
            for i, (provider, count) in enumerate(sorted(failures.items())):
                add_metric("web2rep_provider_failures_total", count, {"provider": provider}, header=(i == 0))

            add_metric("web2rep_requests_total", self._requests)
            add_metric("web2rep_uptime_seconds", time.time() - self._start_time)

            lines.append(f"# HELP web2rep_info Service information")
            lines.append(f"# TYPE web2rep_info gauge")
            lines.append(f'web2rep_info{{version="{__version__}"}} 1')

            if self._latency_count > 0:
                lines.append(f"# HELP web2rep_request_latency_seconds HTTP request latency in seconds")
                lines.append(f"# TYPE web2rep_request_latency_seconds histogram")

                cumulative = 0
                for bucket in self._latency_buckets:
                    cumulative += self._latency_counts[bucket]
                    lines.append(f'web2rep_request_latency_seconds_bucket{{le="{bucket}"}} {cumulative}')

                cumulative += self._latency_counts[float('inf')]
                lines.append(f'web2rep_request_latency_seconds_bucket{{le="+Inf"}} {cumulative}')
                lines.append(f"web2rep_request_latency_seconds_sum {self._latency_sum}")
                lines.append(f"web2rep_request_latency_seconds_count {self._latency_count}")

        except Exception as e:
            logger.error(f"Error collecting metrics: {e}")
            lines.append(f"# Error collecting metrics: {e}")

        return "\n".join(lines) + "\n"

    def get_stats(self) -> Dict[str, Any]:
        """
        Get metrics as a dictionary (for JSON API).

        Returns:
            Dictionary of metric values
        """
        stats: Dict[str, Any] = dict(self.service.cache.stats())
        stats.update({
            "aggregations": self.service.aggregations,
            "provider_failures": self.service.provider_failures,
            "requests": self._requests,
            "uptime_seconds": time.time() - self._start_time,
        })
        return stats

    def reset_counters(self) -> None:
        """Reset request counters (useful for testing)."""
        self._requests = 0
        self._latency_counts = {b: 0 for b in self._latency_buckets}
        self._latency_counts[float('inf')] = 0
        self._latency_sum = 0.0
        self._latency_count = 0
