"""
数据模式层 (Schemas)

使用 Pydantic 定义 API 的请求和响应模型：
- 自动数据验证
- 自动生成 OpenAPI 文档
- 类型安全的序列化/反序列化
"""

from app.schemas.auth import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ResetPasswordRequest,
    SessionResponse,
    SignUpRequest,
    SignUpResponse,
    UpdatePasswordRequest,
    UserInfo,
)
from app.schemas.document import (
    DocumentDeleteResponse,
    DocumentListResponse,
    DocumentOrigin,
    DocumentResponse,
    FileAccessRequest,
    RefreshUrlsResponse,
    RefreshUrlsResult,
    StudentDocuments,
    StudentSummary,
    TeacherDocumentsResponse,
)
from app.schemas.forum import (
    AuthorInfo,
    ForumCategory,
    ReplyCreate,
    ReplyCreateResponse,
    ReplyResponse,
    TopicCreate,
    TopicDetailResponse,
    TopicListResponse,
    TopicResponse,
)

__all__ = [
    # Auth schemas
    "LoginRequest",
    "LoginResponse",
    "MessageResponse",
    "ResetPasswordRequest",
    "SessionResponse",
    "SignUpRequest",
    "SignUpResponse",
    "UpdatePasswordRequest",
    "UserInfo",
    # Document schemas
    "DocumentDeleteResponse",
    "DocumentListResponse",
    "DocumentOrigin",
    "DocumentResponse",
    "FileAccessRequest",
    "RefreshUrlsResponse",
    "RefreshUrlsResult",
    "StudentDocuments",
    "StudentSummary",
    "TeacherDocumentsResponse",
    # Forum schemas
    "AuthorInfo",
    "ForumCategory",
    "ReplyCreate",
    "ReplyCreateResponse",
    "ReplyResponse",
    "TopicCreate",
    "TopicDetailResponse",
    "TopicListResponse",
    "TopicResponse",
]
