"""
Metrics Collector for the gateway.

Thread-safe counters for observability, exposed in stats and the detailed
health check.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class DeliveryMetrics:
    """Metrics for outbound fan-out."""
    total: int = 0
    no_recipients: int = 0
    frames_sent: int = 0
    frames_failed: int = 0
    send_timeouts: int = 0


@dataclass
class ConnectionMetrics:
    """Metrics for connection management."""
    accepted: int = 0
    rejected_auth: int = 0
    rejected_shutdown: int = 0
    evicted: int = 0
    oversized_frames: int = 0
    receive_timeouts: int = 0


@dataclass
class EventMetrics:
    """Metrics for inbound client frames, bus messages and control calls."""
    client_events: int = 0
    unknown_client_events: int = 0
    bus_processed: int = 0
    bus_dropped: int = 0
    control_accepted: int = 0
    control_rejected: int = 0


class MetricsCollector:
    """
    Thread-safe metrics collector.

    Usage:
        metrics = MetricsCollector()
        metrics.increment("delivery", "frames_sent", 3)
        snapshot = metrics.get_snapshot()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._groups: dict[str, Any] = {
            "delivery": DeliveryMetrics(),
            "connection": ConnectionMetrics(),
            "event": EventMetrics(),
        }

    def increment(self, group: str, name: str, count: int = 1) -> None:
        """
        Add ``count`` to a counter.

        Raises:
            KeyError: If the group or counter does not exist.
        """
        with self._lock:
            metrics = self._groups[group]
            if not hasattr(metrics, name):
                raise KeyError(f"Unknown metric {group}.{name}")
            setattr(metrics, name, getattr(metrics, name) + count)

    def get(self, group: str, name: str) -> int:
        with self._lock:
            return getattr(self._groups[group], name)

    def get_snapshot(self) -> dict[str, dict[str, int]]:
        with self._lock:
            return {group: asdict(metrics) for group, metrics in self._groups.items()}

    def reset(self) -> None:
        with self._lock:
            self._groups = {
                "delivery": DeliveryMetrics(),
                "connection": ConnectionMetrics(),
                "event": EventMetrics(),
            }
