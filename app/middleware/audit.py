"""
审计日志中间件

自动记录门户的关键写操作到审计日志表。

功能：
- 记录文档上传 / 删除、账号注销、发帖回帖、URL 批量刷新、老师开通
- 异步写入，不影响响应时间
- 用户 ID 从 request.state 读取（由会话依赖写入）
"""

import asyncio
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.config import get_settings
from app.db.session import SessionLocal
from app.infra.logging import get_logger, get_request_id
from app.services.audit import record_audit_log

logger = get_logger(__name__)

# 未完成的审计写入任务，持有引用直到任务结束
_pending_tasks: set[asyncio.Task] = set()

# (方法, 路径前缀, 路径后缀, 操作类型, 资源类型)，按顺序匹配第一条
AUDIT_ROUTES: list[tuple[str, str, str, str, str]] = [
    ("POST", "/api/documents", "", "doc_upload", "document"),
    ("DELETE", "/api/documents/", "", "doc_delete", "document"),
    ("POST", "/api/teacher/students/", "/documents", "doc_upload_for_student", "document"),
    ("POST", "/api/delete-account", "", "account_delete", "account"),
    ("GET", "/api/refresh-urls", "", "url_refresh", "document"),
    ("POST", "/api/forum/topics/", "/replies", "forum_reply_create", "forum_topic"),
    ("POST", "/api/forum/topics", "", "forum_topic_create", "forum_topic"),
    ("POST", "/api/admin/teacher-role", "", "teacher_role_set", "user_role"),
]


def _get_action_from_path(method: str, path: str) -> tuple[str, str, str | None] | None:
    """根据方法和路径确定 (操作类型, 资源类型, 资源 ID)"""
    path = path.rstrip("/") or "/"
    for audit_method, prefix, suffix, action, resource_type in AUDIT_ROUTES:
        if method != audit_method or not path.startswith(prefix):
            continue
        if suffix and not path.endswith(suffix):
            continue
        rest = path[len(prefix):]
        if suffix:
            rest = rest[: -len(suffix)]
        if prefix.endswith("/"):
            if not rest or "/" in rest:
                continue
            return action, resource_type, rest
        if rest:
            continue
        return action, resource_type, None
    return None


class AuditLogMiddleware(BaseHTTPMiddleware):
    """
    审计日志中间件

    - 记录关键写操作
    - 异步写入数据库
    - 不阻塞响应
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        matched = _get_action_from_path(request.method, request.url.path)
        if not matched or not get_settings().audit_enabled:
            return await call_next(request)
        action, resource_type, resource_id = matched

        request_id = get_request_id() or "unknown"
        start_time = time.time()

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        user_id = getattr(request.state, "user_id", None)
        # 注销的对象就是当前账号
        if resource_type == "account":
            resource_id = user_id

        task = asyncio.create_task(
            self._record_audit(
                request_id=request_id,
                user_id=user_id,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=duration_ms,
                ip_address=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
                error_message=f"HTTP {response.status_code}" if response.status_code >= 400 else None,
            )
        )
        _pending_tasks.add(task)
        task.add_done_callback(_pending_tasks.discard)

        return response

    async def _record_audit(self, **fields):
        """异步记录审计日志"""
        try:
            async with SessionLocal() as session:
                await record_audit_log(session=session, **fields)
                await session.commit()
        except Exception as e:
            # 审计日志写入失败不影响业务
            logger.warning(f"审计日志写入失败: {e}")
