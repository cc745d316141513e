"""Gateway metrics."""

from news_gateway.components.metrics.collector import MetricsCollector

__all__ = ["MetricsCollector"]
