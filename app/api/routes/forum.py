"""
论坛接口

读取公开，发帖 / 回帖需要登录。
"""

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import SessionContext, get_db_session, get_session_context
from app.exceptions import ForumError, ForumTopicNotFoundError, ForumValidationError
from app.schemas.forum import (
    ForumCategory,
    ReplyCreate,
    ReplyCreateResponse,
    TopicCreate,
    TopicDetailResponse,
    TopicListResponse,
    TopicResponse,
)
from app.services import forum as forum_service

router = APIRouter(prefix="/api/forum", tags=["forum"])


def forum_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ForumValidationError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "VALIDATION_ERROR", "detail": str(exc)},
        )
    if isinstance(exc, ForumTopicNotFoundError):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "TOPIC_NOT_FOUND", "detail": "Topic not found"},
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"code": "FORUM_ERROR", "detail": str(exc)},
    )


@router.get("/topics", response_model=TopicListResponse)
async def list_topics_endpoint(
    category: ForumCategory | None = Query(None, description="按分类过滤"),
    db: AsyncSession = Depends(get_db_session),
):
    items = await forum_service.list_topics(db, category)
    return TopicListResponse(items=items, category=category)


@router.get("/topics/{topic_id}", response_model=TopicDetailResponse)
async def get_topic_endpoint(
    topic_id: str = Path(...),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        return await forum_service.get_topic(db, topic_id)
    except ForumTopicNotFoundError as exc:
        raise forum_error(exc)


@router.post("/topics", response_model=TopicResponse, status_code=status.HTTP_201_CREATED)
async def create_topic_endpoint(
    payload: TopicCreate,
    context: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        return await forum_service.create_topic(
            db,
            context.user,
            payload.title,
            payload.content,
            payload.category,
        )
    except (ForumValidationError, ForumError) as exc:
        raise forum_error(exc)


@router.post(
    "/topics/{topic_id}/replies",
    response_model=ReplyCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_reply_endpoint(
    payload: ReplyCreate,
    topic_id: str = Path(...),
    context: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db_session),
):
    """
    回帖

    回复写入后主题计数更新失败时仍返回 201，counter_updated=false 并附带 warning。
    """
    try:
        result = await forum_service.create_reply(db, context.user, topic_id, payload.content)
    except (ForumValidationError, ForumTopicNotFoundError, ForumError) as exc:
        raise forum_error(exc)

    return ReplyCreateResponse(
        reply=result.reply,
        reply_count=result.reply_count,
        counter_updated=result.counter_updated,
        warning=(
            f"Reply saved but the topic reply count was not updated: {result.error}"
            if not result.counter_updated else None
        ),
    )
