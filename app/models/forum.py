"""
论坛模型 (ForumTopic / ForumReply)

主题 1 ── N 回复。主题上的 reply_count 是冗余计数：
回帖时 +1，从不重新统计，所以在部分失败时可能与实际回复数不一致。
"""

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import UUID_PK, CreatedAtMixin, TimestampMixin, new_uuid

FORUM_CATEGORIES = ("Chinese", "Mathematics", "General", "Help")


class ForumTopic(TimestampMixin, Base):
    """论坛主题表"""
    __tablename__ = "forum_topics"

    id: Mapped[UUID_PK] = mapped_column(
        String(36),
        primary_key=True,
        default=new_uuid,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    # Chinese / Mathematics / General / Help
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    reply_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class ForumReply(CreatedAtMixin, Base):
    """论坛回复表"""
    __tablename__ = "forum_replies"

    id: Mapped[UUID_PK] = mapped_column(
        String(36),
        primary_key=True,
        default=new_uuid,
    )
    topic_id: Mapped[str] = mapped_column(
        ForeignKey("forum_topics.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
