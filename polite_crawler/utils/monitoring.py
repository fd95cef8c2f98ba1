"""
Monitoring and metrics collection for the web crawler.
"""

import time
import logging
from typing import Dict, Optional, Any, Union

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, generate_latest
from prometheus_client import start_http_server

from ..crawler.events import CrawlObserver


def classify_error(status_or_message: Union[int, str]) -> str:
    """Reduce a fetch error to a low-cardinality label value."""
    if isinstance(status_or_message, int):
        return f"http_{status_or_message}"

    message = str(status_or_message)
    if message.startswith('HTTP '):
        return f"http_{message[5:].strip()}"
    if 'timeout' in message.lower():
        return 'timeout'
    if message.startswith('Client error'):
        return 'network'
    return 'other'


class MetricsCollector:
    """Prometheus metrics for one crawler process, in a private registry."""

    def __init__(self, enable_prometheus: bool = False, prometheus_port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.enable_prometheus = enable_prometheus
        self.prometheus_port = prometheus_port
        self.registry = CollectorRegistry()

        self.pages_crawled = Counter(
            'crawler_pages_crawled_total',
            'Total number of pages fetched and expanded',
            ['depth'],
            registry=self.registry
        )
        self.robots_blocked = Counter(
            'crawler_robots_blocked_total',
            'Total number of URLs skipped because robots.txt disallows them',
            registry=self.registry
        )
        self.fetch_errors = Counter(
            'crawler_fetch_errors_total',
            'Total number of URLs abandoned after fetch failures',
            ['error_type'],
            registry=self.registry
        )
        self.response_time = Histogram(
            'crawler_response_time_seconds',
            'Time spent fetching a URL, retries included',
            registry=self.registry
        )
        self.queue_size = Gauge(
            'crawler_queue_size',
            'Number of URLs in the frontier',
            registry=self.registry
        )
        self.active_workers = Gauge(
            'crawler_active_workers',
            'Number of workers processing a URL',
            registry=self.registry
        )

    def start_server(self):
        """Start Prometheus metrics HTTP server."""
        if not self.enable_prometheus:
            return

        try:
            start_http_server(self.prometheus_port, registry=self.registry)
            self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")

    def export_text(self) -> bytes:
        """Current metrics in the Prometheus text format."""
        return generate_latest(self.registry)

    def get_sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        return self.registry.get_sample_value(name, labels or {}) or 0.0


class CrawlerMonitor:
    """High-level monitoring interface for the crawler."""

    def __init__(self, metrics_collector: MetricsCollector):
        self.metrics = metrics_collector
        self.start_time = time.time()

    def record_url_crawled(self, url: str, depth: int):
        self.metrics.pages_crawled.labels(depth=str(depth)).inc()

    def record_blocked(self, url: str):
        self.metrics.robots_blocked.inc()

    def record_fetch_error(self, url: str, status_or_message: Union[int, str]):
        self.metrics.fetch_errors.labels(error_type=classify_error(status_or_message)).inc()

    def observe_response_time(self, seconds: float):
        self.metrics.response_time.observe(seconds)

    def update_queue_size(self, size: int):
        self.metrics.queue_size.set(size)

    def update_active_workers(self, count: int):
        self.metrics.active_workers.set(count)

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the main counters."""
        runtime = time.time() - self.start_time
        crawled = sum(
            sample.value
            for metric in self.metrics.pages_crawled.collect()
            for sample in metric.samples
            if sample.name == 'crawler_pages_crawled_total'
        )
        return {
            'runtime_seconds': runtime,
            'pages_crawled': crawled,
            'robots_blocked': self.metrics.get_sample_value('crawler_robots_blocked_total'),
            'pages_per_minute': crawled / (runtime / 60) if runtime > 0 else 0,
        }


class MetricsObserver(CrawlObserver):
    """Feeds crawl events into the crawler monitor."""

    def __init__(self, monitor: CrawlerMonitor):
        self.monitor = monitor

    def crawled(self, url: str, depth: int):
        self.monitor.record_url_crawled(url, depth)

    def blocked(self, url: str):
        self.monitor.record_blocked(url)

    def fetch_error(self, url: str, status_or_message: Union[int, str]):
        self.monitor.record_fetch_error(url, status_or_message)


def initialize_monitoring(enable_prometheus: bool = False, prometheus_port: int = 8000) -> CrawlerMonitor:
    """Create the monitor and start the metrics server when enabled."""
    metrics_collector = MetricsCollector(enable_prometheus, prometheus_port)
    metrics_collector.start_server()
    return CrawlerMonitor(metrics_collector)
