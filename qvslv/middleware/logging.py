"""
模块职责：请求级日志中间件。
- 为每个请求生成 request_id，写入 request.state 供审计日志使用；
- 记录 request_start（含 ip、user agent）与 request_end（含耗时、状态码）；
- 捕获异常并输出 request_error，随后抛出让 FastAPI 处理。
"""
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from qvslv.infra.logger import emit_error, emit


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = str(uuid.uuid4())
        request.state.request_id = rid
        start = time.perf_counter()
        base = {
            "request_id": rid,
            "method": request.method,
            "path": str(request.url.path),
        }
        emit(
            "request_start",
            ip=str(request.client.host) if request.client else None,
            ua=request.headers.get("user-agent", "Unknown"),
            **base,
        )
        try:
            response: Response = await call_next(request)
        except Exception as e:
            emit_error(
                "request_error",
                error=repr(e),
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                **base,
            )
            raise
        emit(
            "request_end",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            **base,
        )
        # 便于链路追踪，在响应头带上 request_id
        response.headers["x-request-id"] = rid
        return response
