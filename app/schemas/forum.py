"""论坛相关的请求/响应模型"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ForumCategory = Literal["Chinese", "Mathematics", "General", "Help"]


class AuthorInfo(BaseModel):
    """作者展示信息（来自 profiles）"""
    id: str
    full_name: str | None = None
    avatar_url: str | None = None
    initials: str = "U"


class TopicCreate(BaseModel):
    """创建主题请求（字段去空白后不能为空，校验在服务层完成）"""
    title: str = Field(default="", max_length=255)
    content: str = ""
    category: str = ""


class ReplyCreate(BaseModel):
    content: str = ""


class TopicResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    content: str
    category: str
    user_id: str
    reply_count: int
    created_at: datetime
    updated_at: datetime
    author: AuthorInfo | None = None


class ReplyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    topic_id: str
    user_id: str
    content: str
    created_at: datetime
    author: AuthorInfo | None = None


class TopicListResponse(BaseModel):
    items: list[TopicResponse]
    category: ForumCategory | None = None


class TopicDetailResponse(BaseModel):
    topic: TopicResponse
    replies: list[ReplyResponse]


class ReplyCreateResponse(BaseModel):
    """
    回帖响应

    counter_updated=False 表示回复已写入但主题的 reply_count 没有更新成功，
    计数会比实际少 1。
    """
    reply: ReplyResponse
    reply_count: int
    counter_updated: bool = True
    warning: str | None = None
