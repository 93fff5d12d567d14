"""Prometheus metrics."""

from .metrics import (
    DEFAULT_METRICS_PORT,
    record_beacon_api_call,
    record_rpc_call,
    record_slot_anomaly,
    start_metrics_server,
    update_scan_progress,
)

__all__ = [
    "DEFAULT_METRICS_PORT",
    "start_metrics_server",
    "update_scan_progress",
    "record_slot_anomaly",
    "record_beacon_api_call",
    "record_rpc_call",
]
