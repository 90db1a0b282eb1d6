"""
模型混入类 (Mixins)

提供可复用的模型字段，通过多重继承添加到具体模型中。

使用示例：
    class ForumTopic(TimestampMixin, Base):
        __tablename__ = "forum_topics"
        id: Mapped[UUID_PK] = mapped_column(...)
"""

from datetime import datetime, timezone
from typing import Annotated
from uuid import uuid4

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

# UUID 主键：BaaS 表统一使用 uuid 字符串
UUID_PK = Annotated[str, mapped_column(String(36), primary_key=True)]


def new_uuid() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CreatedAtMixin:
    """
    创建时间混入类

    同时设置应用侧默认值和数据库侧默认值：应用写入时带微秒精度，
    BaaS 控制台手工插入的行由数据库的 now() 补齐。
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )


class TimestampMixin(CreatedAtMixin):
    """
    时间戳混入类（创建时间 + 更新时间）

    updated_at 不设置 onupdate：论坛主题的 updated_at 表示"最后活跃时间"，
    由回帖流程显式刷新。
    """

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
