"""
审计日志模型

记录门户的关键写操作（上传、删除、账号注销、发帖回帖、URL 刷新、老师开通），
用于问题排查；账号注销后这里是唯一能查到"谁在什么时候注销"的地方。

- request_id 与响应头 X-Request-ID 对应
- resource_type / resource_id 指向被操作的文档、主题或账号
"""

from typing import Any

from sqlalchemy import JSON, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import UUID_PK, CreatedAtMixin, new_uuid


class AuditLog(CreatedAtMixin, Base):
    """审计日志表"""

    __tablename__ = "audit_logs"

    id: Mapped[UUID_PK] = mapped_column(String(36), primary_key=True, default=new_uuid)
    request_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    # 匿名请求（如 /api/refresh-urls）为空
    user_id: Mapped[str | None] = mapped_column(String(36), index=True)

    # doc_upload / doc_delete / account_delete / forum_reply_create ...
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str | None] = mapped_column(String(50))
    resource_id: Mapped[str | None] = mapped_column(String(36))

    method: Mapped[str] = mapped_column(String(10), nullable=False)
    path: Mapped[str] = mapped_column(String(500), nullable=False)
    status_code: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    duration_ms: Mapped[float] = mapped_column(Float, nullable=False)

    ip_address: Mapped[str | None] = mapped_column(String(45))
    user_agent: Mapped[str | None] = mapped_column(String(500))

    error_message: Mapped[str | None] = mapped_column(Text)
    extra_data: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    __table_args__ = (
        Index("ix_audit_logs_user_created", "user_id", "created_at"),
        Index("ix_audit_logs_resource", "resource_type", "resource_id"),
    )

    def __repr__(self):
        return f"<AuditLog {self.action} {self.resource_type}:{self.resource_id} {self.status_code}>"
