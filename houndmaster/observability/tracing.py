"""
OpenTelemetry tracing 配置。

提供全局 tracer 供业务代码使用：
    from houndmaster.observability import tracer
    with tracer.start_as_current_span("analysis.contract"):
        ...
"""

import os

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor

SERVICE_NAME = "houndmaster"
SERVICE_VERSION = "0.1.0"

_provider = TracerProvider(
    resource=Resource.create({"service.name": SERVICE_NAME, "service.version": SERVICE_VERSION})
)

# 仅在 HOUNDMASTER_TRACE_CONSOLE=1 时输出 span 到控制台，避免日志噪音
if os.getenv("HOUNDMASTER_TRACE_CONSOLE", "0") == "1":
    _provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

trace.set_tracer_provider(_provider)

tracer = trace.get_tracer(SERVICE_NAME, SERVICE_VERSION)
