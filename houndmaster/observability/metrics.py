"""
Prometheus metrics 定义。

所有自定义指标集中定义，业务模块通过 `from houndmaster.observability import metrics` 引用。
"""

from prometheus_client import Counter, Gauge, Histogram, Info


class _Metrics:
    """集中管理所有 Prometheus 指标"""

    def __init__(self):
        # ── HTTP 请求 ──
        self.http_requests_total = Counter(
            "houndmaster_http_requests_total",
            "HTTP 请求总数",
            ["method", "endpoint", "status_code"],
        )
        self.http_request_duration_seconds = Histogram(
            "houndmaster_http_request_duration_seconds",
            "HTTP 请求延迟 (秒)",
            ["method", "endpoint"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 180.0),
        )

        # ── 上游 API（marketplace / explorer / rpc）──
        self.upstream_requests_total = Counter(
            "houndmaster_upstream_requests_total",
            "上游 API 调用总数",
            ["service", "outcome"],  # outcome: ok / error / rate_limited
        )
        self.rate_limited_total = Counter(
            "houndmaster_rate_limited_total",
            "上游返回 HTTP 429 的次数",
            ["service"],
        )
        self.limiter_wait_seconds = Histogram(
            "houndmaster_limiter_wait_seconds",
            "限流器派发前等待时长 (秒)",
            ["limiter"],
            buckets=(0, 0.05, 0.1, 0.2, 0.5, 1.0, 2.0, 5.0),
        )
        self.limiter_queue_depth = Gauge(
            "houndmaster_limiter_queue_depth",
            "限流器排队任务数",
            ["limiter"],
        )

        # ── LLM ──
        self.llm_requests_total = Counter(
            "houndmaster_llm_requests_total",
            "LLM 调用总数",
            ["provider", "model"],
        )
        self.llm_duration_seconds = Histogram(
            "houndmaster_llm_duration_seconds",
            "LLM 调用延迟 (秒)",
            ["provider", "model"],
            buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
        )
        self.llm_errors_total = Counter(
            "houndmaster_llm_errors_total",
            "LLM 调用失败数",
            ["provider", "model"],
        )

        # ── 分析 ──
        self.analysis_total = Counter(
            "houndmaster_analysis_total",
            "合约分析结果数",
            ["outcome", "confidence"],  # outcome: 终止状态名
        )
        self.analysis_inflight = Gauge(
            "houndmaster_analysis_inflight",
            "正在进行的合约分析数",
        )
        self.website_cache_total = Counter(
            "houndmaster_website_cache_total",
            "网站分析缓存命中情况",
            ["result"],  # hit / miss
        )
        self.website_scrape_total = Counter(
            "houndmaster_website_scrape_total",
            "网站抓取次数",
            ["success"],
        )

        # ── 系统 ──
        self.app_info = Info(
            "houndmaster_app",
            "应用元信息",
        )


# 单例
metrics = _Metrics()
