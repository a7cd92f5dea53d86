"""
Prometheus metrics for the metaconfig service.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os


class Metrics:
    """
    Centralized metrics for the metaconfig service.
    """

    def __init__(self, service_name: str = "metaconfig", version: str = "0.1.0", registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        # HTTP Metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["service", "method", "path", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["service", "method", "path"],
            registry=self.registry,
        )

        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            ["service"],
            registry=self.registry,
        )
        self.http_requests_active.labels(service=service_name).set(0)

        # Application Info
        self.app_info = Info(
            "app",
            "Application information",
            registry=self.registry,
        )
        self.app_info.info({"service": service_name, "version": version})

        self.app_up = Gauge(
            "app_up",
            "Application up status (1=up, 0=down)",
            ["service", "version"],
            registry=self.registry,
        )
        self.app_up.labels(service=service_name, version=version).set(1)

        # Business Metrics
        self.items_written_total = Counter(
            "metaconfig_items_written_total",
            "Catalog items written by bulk apply",
            ["outcome"],
            registry=self.registry,
        )

        self.item_events_total = Counter(
            "metaconfig_item_events_total",
            "Catalog item events handled",
            ["event_type"],
            registry=self.registry,
        )

        self.configurations_applied_total = Counter(
            "metaconfig_configurations_applied_total",
            "Configurations applied to items by item events",
            ["outcome"],
            registry=self.registry,
        )

        self.apply_duration = Histogram(
            "metaconfig_bulk_apply_duration_seconds",
            "Duration of a bulk apply run in seconds",
            registry=self.registry,
        )

        # System Metrics
        self._setup_process_metrics()

    def _setup_process_metrics(self):
        """Set up process-level metrics using psutil."""
        # CPU
        self.process_cpu_seconds = Counter(
            "process_cpu_seconds_total",
            "Total CPU time consumed by process",
            ["service"],
            registry=self.registry,
        )

        # Memory
        self.process_memory_bytes = Gauge(
            "process_resident_memory_bytes",
            "Resident memory size in bytes",
            ["service"],
            registry=self.registry,
        )

        # File descriptors
        self.process_open_fds = Gauge(
            "process_open_fds",
            "Number of open file descriptors",
            ["service"],
            registry=self.registry,
        )

        self.update_system_metrics()

    def update_system_metrics(self):
        """Update system metrics from psutil."""
        try:
            process = psutil.Process(os.getpid())

            # Counter can't be set, so only the delta since the last call is added
            cpu_times = process.cpu_times()
            cpu_total = cpu_times.user + cpu_times.system
            if not hasattr(self, "_last_cpu_total"):
                self._last_cpu_total = 0
            cpu_diff = cpu_total - self._last_cpu_total
            if cpu_diff > 0:
                self.process_cpu_seconds.labels(service=self.service_name).inc(cpu_diff)
            self._last_cpu_total = cpu_total

            memory_info = process.memory_info()
            self.process_memory_bytes.labels(service=self.service_name).set(memory_info.rss)

            try:
                num_fds = process.num_fds()
                self.process_open_fds.labels(service=self.service_name).set(num_fds)
            except AttributeError:
                # num_fds() not available on all platforms
                pass

        except psutil.Error:
            # Process metrics are best effort
            pass

    def record_bulk_apply(self, successful: int, failed: int, duration_seconds: float):
        """Record the outcome of one bulk apply run."""
        self.items_written_total.labels(outcome="success").inc(successful)
        self.items_written_total.labels(outcome="failure").inc(failed)
        self.apply_duration.observe(duration_seconds)

    def record_item_event(self, event_type: str, applied: int, failed: int):
        """Record one handled item event."""
        self.item_events_total.labels(event_type=event_type).inc()
        self.configurations_applied_total.labels(outcome="success").inc(applied)
        self.configurations_applied_total.labels(outcome="failure").inc(failed)


_metrics: Metrics | None = None


def set_metrics(metrics: Metrics):
    """Register the process-wide Prometheus metrics used by the pipeline."""
    global _metrics
    _metrics = metrics


def get_metrics() -> Metrics | None:
    return _metrics
