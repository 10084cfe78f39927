"""Telemetry for the MapyChat proxy: structured request logs and metrics."""

from mapychat.telemetry.metrics import MetricsCollector
from mapychat.telemetry.structured_logging import log_request_event

__all__ = ["MetricsCollector", "log_request_event"]
