"""Observability: usage counters and tracing helpers."""

from askgate.obs.metrics import InMemoryQueryMetrics, OtelQueryMetrics, QueryMetrics

__all__ = ["InMemoryQueryMetrics", "OtelQueryMetrics", "QueryMetrics"]
