"""
Prometheus 指标

HTTP 请求指标由 main.py 中间件记录；品牌登录相关计数由 brand_otp_service 记录。
outcome 标签只有固定几种取值，不包含邮箱等高基数字段。
"""
from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNT = Counter(
    "ratestuff_http_requests_total",
    "HTTP requests by route and status",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "ratestuff_http_request_duration_seconds",
    "HTTP request duration by route",
    ["method", "path"],
)
IN_PROGRESS = Gauge(
    "ratestuff_http_requests_in_progress",
    "HTTP requests currently being served",
)

BRAND_OTP_ISSUED = Counter(
    "ratestuff_brand_otp_issued_total",
    "Brand login codes issued and dispatched",
)
BRAND_OTP_VERIFICATIONS = Counter(
    "ratestuff_brand_otp_verifications_total",
    "Brand login code verification outcomes",
    ["outcome"],
)
BRAND_OTP_PURGED = Counter(
    "ratestuff_brand_otp_purged_total",
    "Expired brand OTP rows deleted",
)


def get_route_name(scope: dict) -> str:
    """优先使用路由模板（/brands/{brand_id}），避免按实际路径爆标签"""
    route = scope.get("route")
    path = getattr(route, "path", None)
    return path or scope.get("path", "unknown")


def record_request(method: str, path: str, status_code: int, duration: float) -> None:
    REQUEST_COUNT.labels(method, path, str(status_code)).inc()
    REQUEST_LATENCY.labels(method, path).observe(duration)
