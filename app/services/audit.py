"""
审计日志服务

审计中间件在响应返回后调用 record_audit_log 写入一行；
query_audit_logs 用于排查（某个学生的操作记录、某份文档的上传 / 删除历史）。

使用示例：
    from app.services.audit import record_audit_log, query_audit_logs

    await record_audit_log(
        session,
        request_id="xxx",
        action="doc_delete",
        method="DELETE",
        path="/api/documents/abc",
        status_code=200,
        duration_ms=35.2,
        user_id="student-1",
        resource_type="document",
        resource_id="abc",
    )
    history = await query_audit_logs(session, resource_type="document", resource_id="abc")
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.infra.logging import get_logger
from app.models.audit_log import AuditLog

logger = get_logger(__name__)

MAX_USER_AGENT_LENGTH = 500


async def record_audit_log(
    session: AsyncSession,
    *,
    request_id: str,
    action: str,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    user_id: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    error_message: str | None = None,
    extra_data: dict | None = None,
) -> AuditLog:
    """
    记录审计日志

    只 add 不 commit，由调用方控制事务。

    Args:
        action: 操作类型（doc_upload / doc_delete / account_delete / ...）
        resource_type / resource_id: 被操作的对象（document / forum_topic / account）
        duration_ms: 请求耗时（毫秒）
        error_message: 失败请求的错误描述
    """
    log = AuditLog(
        request_id=request_id,
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=round(duration_ms, 2),
        ip_address=ip_address,
        user_agent=user_agent[:MAX_USER_AGENT_LENGTH] if user_agent else None,
        error_message=error_message,
        extra_data=extra_data,
    )
    session.add(log)

    logger.debug(
        f"审计: {action} {method} {path} -> {status_code}",
        extra={"audit_action": action, "resource_id": resource_id},
    )
    return log


async def query_audit_logs(
    session: AsyncSession,
    *,
    user_id: str | None = None,
    action: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    status_code: int | None = None,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[AuditLog]:
    """按用户 / 操作 / 资源 / 状态码 / 时间范围查询，时间倒序"""
    stmt = select(AuditLog)

    if user_id:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if resource_type:
        stmt = stmt.where(AuditLog.resource_type == resource_type)
    if resource_id:
        stmt = stmt.where(AuditLog.resource_id == resource_id)
    if status_code:
        stmt = stmt.where(AuditLog.status_code == status_code)
    if start_time:
        stmt = stmt.where(AuditLog.created_at >= start_time)
    if end_time:
        stmt = stmt.where(AuditLog.created_at <= end_time)

    stmt = stmt.order_by(AuditLog.created_at.desc()).limit(limit).offset(offset)
    result = await session.execute(stmt)
    return list(result.scalars().all())
