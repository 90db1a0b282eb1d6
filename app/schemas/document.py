"""文档相关的请求/响应模型"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# 老师视图的来源过滤：全部 / 学生上传 / 老师反馈
DocumentOrigin = Literal["all", "student", "teacher"]


class DocumentResponse(BaseModel):
    """文档响应"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    created_at: datetime
    user_id: str
    file_name: str
    file_type: str
    file_size: int
    file_path: str
    url: str | None = None
    user_email: str | None = None
    user_name: str | None = None
    uploaded_by_teacher: bool = False
    teacher_email: str | None = None
    url_refreshed: bool = Field(default=False, description="本次列表是否成功换发了签名地址")


class DocumentListResponse(BaseModel):
    """文档列表响应（按创建时间倒序）"""
    items: list[DocumentResponse]
    total: int


class DocumentDeleteResponse(BaseModel):
    success: bool = True
    document_id: str


class StudentSummary(BaseModel):
    """老师视图中的学生（从文档行推导）"""
    id: str
    email: str | None = None
    display_name: str


class StudentDocuments(BaseModel):
    """按学生分组的文档"""
    user_id: str
    email: str | None = None
    display_name: str
    documents: list[DocumentResponse]


class TeacherDocumentsResponse(BaseModel):
    origin: DocumentOrigin = "all"
    items: list[DocumentResponse]
    students: list[StudentDocuments]


class RefreshUrlsResult(BaseModel):
    """批量刷新签名地址的统计"""
    total: int = 0
    success: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class RefreshUrlsResponse(BaseModel):
    success: bool = True
    message: str
    results: RefreshUrlsResult | None = None


class FileAccessRequest(BaseModel):
    """文件访问诊断请求"""
    filePath: str | None = Field(default=None, description="存储桶内的文件路径")
