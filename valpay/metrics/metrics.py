"""Prometheus metrics for valpay."""

import logging
import threading
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)

DEFAULT_METRICS_PORT = 8008

# Scan metrics
slots_total = Gauge(
    "valpay_scan_slots_total",
    "Number of slots in the current scan range",
)

slots_processed = Gauge(
    "valpay_scan_slots_processed",
    "Number of slots settled in the current scan",
)

slot_anomalies = Counter(
    "valpay_slot_anomalies_total",
    "Slots skipped or failed during a scan",
    ["reason"],
)

# Beacon API metrics
beacon_api_requests = Counter(
    "valpay_beacon_api_requests_total",
    "Total Beacon API requests",
    ["endpoint"],
)

beacon_api_errors = Counter(
    "valpay_beacon_api_errors_total",
    "Total Beacon API errors",
    ["endpoint", "error_type"],
)

beacon_api_latency = Histogram(
    "valpay_beacon_api_latency_seconds",
    "Beacon API request latency",
    ["endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

# Execution RPC metrics
rpc_requests = Counter(
    "valpay_rpc_requests_total",
    "Total execution RPC requests",
    ["method"],
)

rpc_errors = Counter(
    "valpay_rpc_errors_total",
    "Total execution RPC errors",
    ["method", "error_type"],
)

rpc_latency = Histogram(
    "valpay_rpc_latency_seconds",
    "Execution RPC request latency",
    ["method"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)


_server_started = False
_server_lock = threading.Lock()


def start_metrics_server(port: int = DEFAULT_METRICS_PORT) -> bool:
    """Start the Prometheus metrics HTTP server.

    Returns:
        True if server started successfully, False if already running
    """
    global _server_started

    with _server_lock:
        if _server_started:
            logger.warning("Metrics server already running")
            return False

        try:
            start_http_server(port)
            _server_started = True
            logger.info(f"Prometheus metrics server started on port {port}")
            return True
        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")
            return False


def update_scan_progress(processed: int, total: int) -> None:
    """Update scan progress gauges."""
    slots_processed.set(processed)
    slots_total.set(total)


def record_slot_anomaly(reason: str) -> None:
    """Record a skipped or failed slot."""
    slot_anomalies.labels(reason=reason).inc()


def record_beacon_api_call(endpoint: str, latency: float, error: Optional[str] = None) -> None:
    """Record a Beacon API call.

    Args:
        endpoint: Logical endpoint name (e.g., 'block', 'validator')
        latency: Request latency in seconds
        error: Error type if the call failed, None if successful
    """
    beacon_api_requests.labels(endpoint=endpoint).inc()
    beacon_api_latency.labels(endpoint=endpoint).observe(latency)
    if error:
        beacon_api_errors.labels(endpoint=endpoint, error_type=error).inc()


def record_rpc_call(method: str, latency: float, error: Optional[str] = None) -> None:
    """Record an execution RPC call."""
    rpc_requests.labels(method=method).inc()
    rpc_latency.labels(method=method).observe(latency)
    if error:
        rpc_errors.labels(method=method, error_type=error).inc()
