import atexit
import logging
import re

from fastapi import FastAPI, Request, status, HTTPException
from starlette.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

# 速率限制
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.logging_config import root_logger  # noqa: F401  初始化日志
from app.database import init_db
from app.services.scheduler import start_scheduler, shutdown_scheduler
from app.services.google_sheet_sync import sheet_sync_debouncer
from app.api import (
    advertising_costs,
    orders,
    profit_forecast,
    registry,
    sheet_sync,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Profit Forecast API")

# 速率限制：使用客户端 IP 作为限制键
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

ALLOWED_ORIGINS = list(settings.CORS_ORIGINS)

# 本地开发环境任意端口
ALLOWED_ORIGIN_REGEX = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_origin_regex=ALLOWED_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH", "HEAD"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "Accept", "Origin"],
    expose_headers=["Content-Disposition", "X-Request-Id"],
    max_age=3600,
)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    """添加安全响应头"""
    response = await call_next(request)
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


def get_cors_headers(origin: str = None) -> dict:
    """根据请求来源返回 CORS 头（异常响应同样需要）"""
    headers = {
        "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS, PATCH, HEAD",
        "Access-Control-Allow-Headers": "Authorization, Content-Type, X-Requested-With, Accept, Origin",
        "Access-Control-Expose-Headers": "Content-Disposition, X-Request-Id",
        "Access-Control-Allow-Credentials": "true",
    }
    if origin and (origin in ALLOWED_ORIGINS or re.match(ALLOWED_ORIGIN_REGEX, origin)):
        headers["Access-Control-Allow-Origin"] = origin
    return headers


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """全局异常处理器，确保所有错误都返回 JSON 与 CORS 头"""
    logger.error("未处理的异常: %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc), "type": type(exc).__name__},
        headers=get_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=get_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(HTTPException)
async def fastapi_http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=get_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors()},
        headers=get_cors_headers(request.headers.get("origin")),
    )


# API routes
app.include_router(profit_forecast.router)
app.include_router(orders.router)
app.include_router(advertising_costs.router)
app.include_router(registry.router)
app.include_router(sheet_sync.router)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/")
def root():
    return {"message": "Profit forecast backend is running", "docs": "/docs"}


@app.on_event("startup")
async def startup_event():
    """应用启动时执行"""
    init_db()
    try:
        start_scheduler()
    except Exception as e:
        # 调度器启动失败不阻止应用启动
        logger.error(f"定时任务调度器启动失败: {e}", exc_info=True)


@app.on_event("shutdown")
async def shutdown_event():
    """应用关闭时执行"""
    sheet_sync_debouncer.cancel_all()
    shutdown_scheduler()


atexit.register(shutdown_scheduler)
