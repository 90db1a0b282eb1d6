"""
论坛服务

主题（forum_topics）与回复（forum_replies）。作者信息从 profiles 批量读取。

reply_count 是冗余计数，回帖时在原值上 +1，不重新统计：
回复写入成功但计数更新失败时，回复照常可见，计数会少 1，
结果里标记 counter_updated=False。
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ForumError, ForumTopicNotFoundError, ForumValidationError
from app.infra.baas_auth import AuthUser
from app.models import FORUM_CATEGORIES, ForumReply, ForumTopic, Profile
from app.models.mixins import utcnow
from app.schemas.forum import (
    AuthorInfo,
    ReplyResponse,
    TopicDetailResponse,
    TopicResponse,
)
from app.services.saga import Saga, StepPolicy

logger = logging.getLogger(__name__)


def _require(value: str | None, field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ForumValidationError(f"{field_name} is required")
    return cleaned


def validate_category(category: str | None) -> str:
    cleaned = _require(category, "Category")
    if cleaned not in FORUM_CATEGORIES:
        raise ForumValidationError(
            f"Invalid category '{cleaned}'. Expected one of: {', '.join(FORUM_CATEGORIES)}"
        )
    return cleaned


async def load_profiles(session: AsyncSession, user_ids: set[str]) -> dict[str, AuthorInfo]:
    """按 id 批量读取作者资料"""
    if not user_ids:
        return {}
    result = await session.execute(select(Profile).where(Profile.id.in_(user_ids)))
    return {
        profile.id: AuthorInfo(
            id=profile.id,
            full_name=profile.full_name,
            avatar_url=profile.avatar_url,
            initials=profile.initials,
        )
        for profile in result.scalars().all()
    }


def _topic_response(topic: ForumTopic, profiles: dict[str, AuthorInfo]) -> TopicResponse:
    item = TopicResponse.model_validate(topic)
    item.author = profiles.get(topic.user_id)
    return item


async def list_topics(session: AsyncSession, category: str | None = None) -> list[TopicResponse]:
    """主题列表，按最近活动（updated_at）倒序"""
    stmt = select(ForumTopic).order_by(ForumTopic.updated_at.desc())
    if category:
        stmt = stmt.where(ForumTopic.category == validate_category(category))
    topics = list((await session.execute(stmt)).scalars().all())
    profiles = await load_profiles(session, {t.user_id for t in topics})
    return [_topic_response(topic, profiles) for topic in topics]


async def get_topic(session: AsyncSession, topic_id: str) -> TopicDetailResponse:
    """主题详情 + 回复（按时间正序）"""
    topic = await session.get(ForumTopic, topic_id)
    if topic is None:
        raise ForumTopicNotFoundError(f"Topic {topic_id} not found")

    result = await session.execute(
        select(ForumReply)
        .where(ForumReply.topic_id == topic_id)
        .order_by(ForumReply.created_at.asc())
    )
    replies = list(result.scalars().all())

    profiles = await load_profiles(session, {topic.user_id} | {r.user_id for r in replies})
    reply_items = []
    for reply in replies:
        item = ReplyResponse.model_validate(reply)
        item.author = profiles.get(reply.user_id)
        reply_items.append(item)
    return TopicDetailResponse(topic=_topic_response(topic, profiles), replies=reply_items)


async def create_topic(
    session: AsyncSession,
    user: AuthUser,
    title: str | None,
    content: str | None,
    category: str | None,
) -> TopicResponse:
    title = _require(title, "Title")
    content = _require(content, "Content")
    category = validate_category(category)

    topic = ForumTopic(
        title=title,
        content=content,
        category=category,
        user_id=user.id,
        reply_count=0,
    )
    session.add(topic)
    try:
        await session.commit()
    except Exception as exc:
        await session.rollback()
        raise ForumError(f"Failed to create topic: {exc}") from exc
    await session.refresh(topic)

    logger.info(f"新主题: id={topic.id}, category={category}, user={user.id}")
    profiles = await load_profiles(session, {user.id})
    return _topic_response(topic, profiles)


@dataclass
class ReplyResult:
    reply: ReplyResponse
    reply_count: int
    counter_updated: bool = True
    error: str | None = None


async def _increment_reply_count(session: AsyncSession, topic_id: str, prior: int) -> int:
    """在读到的原值上 +1 并刷新 updated_at"""
    new_count = prior + 1
    await session.execute(
        update(ForumTopic)
        .where(ForumTopic.id == topic_id)
        .values(reply_count=new_count, updated_at=utcnow())
    )
    await session.commit()
    return new_count


async def create_reply(
    session: AsyncSession,
    user: AuthUser,
    topic_id: str,
    content: str | None,
) -> ReplyResult:
    """
    回帖：写入回复 -> 主题计数 +1

    Raises:
        ForumValidationError: 内容为空
        ForumTopicNotFoundError: 主题不存在
        ForumError: 回复写入失败
    """
    content = _require(content, "Reply content")
    topic = await session.get(ForumTopic, topic_id)
    if topic is None:
        raise ForumTopicNotFoundError(f"Topic {topic_id} not found")
    prior = topic.reply_count or 0

    async def insert_reply(state):
        reply = ForumReply(topic_id=topic_id, user_id=user.id, content=content)
        session.add(reply)
        try:
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        await session.refresh(reply)
        return ReplyResponse.model_validate(reply)

    async def increment_counter(state):
        try:
            return await _increment_reply_count(session, topic_id, prior)
        except Exception:
            await session.rollback()
            raise

    result = await (
        Saga("create_reply")
        .step("insert_reply", insert_reply, policy=StepPolicy.ABORT)
        .step("increment_counter", increment_counter, policy=StepPolicy.ABORT)
        .run()
    )

    if not result.succeeded("insert_reply"):
        raise ForumError(f"Failed to create reply: {result.abort_error}")

    reply = result.state["insert_reply"]
    profiles = await load_profiles(session, {user.id})
    reply.author = profiles.get(user.id)

    if not result.completed:
        logger.warning(f"回复已写入但计数未更新: topic={topic_id}, reply={reply.id}")
        return ReplyResult(
            reply=reply,
            reply_count=prior,
            counter_updated=False,
            error=str(result.abort_error),
        )
    return ReplyResult(reply=reply, reply_count=result.state["increment_counter"])
