"""
Observability 模块：OpenTelemetry tracing + Prometheus metrics。

用法：
    from houndmaster.observability import setup_observability, metrics, tracer

    setup_observability(app)

    with tracer.start_as_current_span("analysis.contract"):
        ...

    metrics.upstream_requests_total.labels(service="explorer", outcome="ok").inc()
"""

from houndmaster.observability.metrics import metrics
from houndmaster.observability.setup import setup_observability
from houndmaster.observability.tracing import tracer

__all__ = ["setup_observability", "metrics", "tracer"]
