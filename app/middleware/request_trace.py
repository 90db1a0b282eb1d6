"""
请求追踪中间件

- 接收或生成 X-Request-ID，写入日志上下文和 request.state
- 每个请求开始时清空上一次的 user_id（会话依赖认证后再写入）
- 响应头返回 X-Request-ID / X-Response-Time
- 按状态码分级记录访问日志；页面网关的 307 跳转记为 INFO
"""

import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.infra.logging import RequestTimer, get_logger, set_request_id, set_user_id

logger = get_logger(__name__)

# 高频低价值请求，成功时不记日志
SKIP_LOG_PATHS = ("/healthz", "/readyz", "/favicon.ico")


def _log_fields(request: Request, status_code: int, duration_ms: float) -> dict:
    return {
        "method": request.method,
        "path": request.url.path,
        "status_code": status_code,
        "duration_ms": duration_ms,
        "session_user": getattr(request.state, "user_id", None),
    }


class RequestTraceMiddleware(BaseHTTPMiddleware):
    """请求追踪中间件"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        set_request_id(request_id)
        set_user_id(None)
        request.state.request_id = request_id

        timer = RequestTimer()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"{request.method} {request.url.path} - 500 - {timer.elapsed_ms:.0f}ms: {e}",
                extra=_log_fields(request, 500, timer.elapsed_ms),
            )
            raise

        duration_ms = timer.elapsed_ms
        fields = _log_fields(request, response.status_code, duration_ms)
        message = f"{request.method} {request.url.path} - {response.status_code} - {duration_ms:.0f}ms"

        if response.status_code >= 500:
            logger.error(message, extra=fields)
        elif response.status_code >= 400:
            logger.warning(message, extra=fields)
        elif request.url.path not in SKIP_LOG_PATHS:
            if 300 <= response.status_code < 400:
                message += f" -> {response.headers.get('location', '?')}"
            logger.info(message, extra=fields)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms:.0f}ms"
        return response
