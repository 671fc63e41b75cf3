"""
应用入口：
- 加载 .env（先 .env.example 作默认，再用 .env 覆盖）
- lifespan 启动阶段：配置日志 → 打印 logger_config → 检查签名秘钥 → 初始化数据库（失败即退出）
- 装载请求日志中间件、异常处理器、路由
- 提供 /api/health
"""
from pathlib import Path
from dotenv import load_dotenv

# 1) 先加载 .env，务必在导入 logger / security 之前
ROOT = Path(__file__).resolve().parents[1]
ENV = ROOT / ".env"
ENV_EXAMPLE = ROOT / ".env.example"
if ENV_EXAMPLE.exists():
    load_dotenv(ENV_EXAMPLE, override=False)
if ENV.exists():
    load_dotenv(ENV, override=True)

# 2) 正常导入
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from qvslv.api import auth as auth_api
from qvslv.core import security
from qvslv.core.errors import AuthServiceError, InternalError, ValidationError
from qvslv.infra.db import init_db
from qvslv.infra.logger import (
    configure_logging, emit, emit_error, emit_warning,
    LOG_TO_FILE, LOG_DIR, LOG_FILE, LOG_ROTATE_WHEN, LOG_BACKUP_COUNT,
)
from qvslv.middleware.logging import RequestLoggingMiddleware

APP_ENV = os.getenv("APP_ENV", "development")


# 3) lifespan：替代 on_event（startup/shutdown）
@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    configure_logging()
    emit(
        "logger_config",
        to_file=LOG_TO_FILE, dir=LOG_DIR, file=LOG_FILE,
        when=LOG_ROTATE_WHEN, backup=LOG_BACKUP_COUNT,
    )
    if security.using_fallback_secret():
        emit_warning("auth_secret_fallback", hint="set SECRET_KEY; tokens are signed with the built-in default")
    emit(
        "auth_config",
        token_ttl_minutes=security.get_access_token_expire_minutes(),
        bcrypt_rounds=security.BCRYPT_ROUNDS,
    )
    # 连不上库直接抛出，进程不对外服务
    init_db()
    yield
    # shutdown
    emit("app_shutdown")


# 4) 创建应用并装配（lifespan 要在这里传入）
app = FastAPI(title="QVSLV Auth", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(AuthServiceError)
async def handle_auth_service_error(request: Request, exc: AuthServiceError):
    if isinstance(exc, InternalError):
        emit_error("api_internal_error", path=str(request.url.path), error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    # 类型不对（比如 username 传了数字）也按 400 处理，与业务校验保持同一格式
    emit("api_invalid_payload", path=str(request.url.path), errors=len(exc.errors()))
    err = ValidationError("invalid_payload", message="Invalid request payload")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        emit("route_not_found", method=request.method, path=str(request.url.path))
        return JSONResponse(status_code=404, content={"error": "Route not found"})
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    # 细节只进日志，响应里不带
    emit_error("api_unhandled_error", path=str(request.url.path), error=repr(exc))
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/api/health")
def health():
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": APP_ENV,
    }


# 路由
app.include_router(auth_api.router, prefix="/api/auth", tags=["auth"])
