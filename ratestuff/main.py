"""
FastAPI 主入口
"""
import logging
import time
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Response, HTTPException, Request, status, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from ratestuff.config import get_settings
from ratestuff.database import init_db
from ratestuff.errors import AppError, ValidationError
from ratestuff.routers import admin, brand
from ratestuff.utils.request_context import configure_logging, request_id_ctx_var
from ratestuff.utils.metrics import IN_PROGRESS, get_route_name, record_request
from ratestuff.utils.security import verify_metrics_basic_auth

SERVICE_NAME = "ratestuff-backend"

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    settings.validate_secrets()
    await init_db()
    yield


app = FastAPI(
    title="RateStuff API",
    description="RateStuff backend: admin guard and brand sign-in",
    version="1.0.0",
    lifespan=lifespan,
)


def _error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "ok": False,
            "status": "error",
            "error": error,
            "message": message,
            "code": status_code,
        },
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    error = {
        401: "unauthorized",
        404: "not_found",
        405: "method_not_allowed",
        429: "rate_limited",
    }.get(exc.status_code, "http_error")
    response = _error_response(exc.status_code, error, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # 只返回简短错误码，不回显字段细节
    fields = {str(part) for err in exc.errors() for part in err.get("loc", ())}
    if "email" in fields:
        error = ValidationError("invalid_email", "Invalid e-mail address")
    elif "code" in fields:
        error = ValidationError("malformed_code", "Code must be 6 digits")
    else:
        error = ValidationError()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", "Internal Server Error"
    )


@app.middleware("http")
async def request_context_middleware(request, call_next):
    """请求 ID 透传 + HTTP 指标"""
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    request.state.request_id = request_id
    ctx_token = request_id_ctx_var.set(request_id)
    tracked = settings.metrics_enabled
    if tracked:
        IN_PROGRESS.inc()
    started = time.perf_counter()
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-ID"] = request_id
        return response
    finally:
        if tracked:
            record_request(
                request.method,
                get_route_name(request.scope),
                status_code,
                time.perf_counter() - started,
            )
            IN_PROGRESS.dec()
        request_id_ctx_var.reset(ctx_token)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "X-Request-ID",
    ],
    expose_headers=["X-Request-ID"],
)

# ============================================================================
# API 版本控制
# 所有 API 路由都在 /api/v1/ 前缀下，旧的 /api/ 路径保留兼容
# ============================================================================

API_V1_PREFIX = "/api/v1"

app.include_router(brand.router, prefix=f"{API_V1_PREFIX}/brand", tags=["V1-Brand"])
app.include_router(admin.router, prefix=f"{API_V1_PREFIX}/admin", tags=["V1-Admin"])

app.include_router(brand.router, prefix="/api/brand", tags=["Brand-Deprecated"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin-Deprecated"])


@app.get("/")
async def root():
    return {"service": SERVICE_NAME, "status": "ok", "docs_url": "/docs"}


@app.get("/api/health")
@app.get("/api/v1/health")
async def health_check():
    """存活检查（不探测数据库 / Redis）"""
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "version": app.version,
        "environment": settings.environment,
    }


@app.get("/metrics", dependencies=[Depends(verify_metrics_basic_auth)])
async def metrics():
    """Prometheus 指标端点（支持 Basic Auth 认证）"""
    if not settings.metrics_enabled:
        raise HTTPException(status_code=404, detail="Metrics disabled")
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


# 上报到 Sentry 前抹掉请求体中的验证码 / nonce
_SCRUBBED_FIELDS = ("code", "nonce", "access_token")


def _scrub_event(event, hint):
    data = event.get("request", {}).get("data")
    if isinstance(data, dict):
        for field in _SCRUBBED_FIELDS:
            if field in data:
                data[field] = "[Filtered]"
    return event


def init_sentry() -> None:
    if not settings.sentry_dsn:
        return
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        integrations=[FastApiIntegration()],
        traces_sample_rate=settings.sentry_traces_sample_rate,
        profiles_sample_rate=settings.sentry_profiles_sample_rate,
        send_default_pii=False,
        before_send=_scrub_event,
    )


configure_logging(settings.log_level)
init_sentry()
