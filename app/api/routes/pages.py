"""
门户页面数据

受保护页面（/dashboard /upload /teacher-portal）返回页面需要的 JSON 数据。
未登录的页面请求在网关中间件里就被跳转到登录页。
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    SessionContext,
    get_db_session,
    get_session_context,
    get_user_storage,
    require_teacher,
)
from app.api.routes.auth import to_user_info
from app.config import get_settings
from app.infra.baas_storage import BaaSStorageClient
from app.services.documents import group_documents_by_student, list_documents, list_students

router = APIRouter(tags=["pages"])


@router.get("/dashboard")
async def dashboard_page(
    context: SessionContext = Depends(get_session_context),
    storage: BaaSStorageClient = Depends(get_user_storage),
    db: AsyncSession = Depends(get_db_session),
):
    """学生首页：自己的文档和老师的反馈；老师会被指向 /teacher-portal"""
    if context.is_teacher:
        return {
            "user": to_user_info(context.user),
            "role": context.role,
            "redirect": "/teacher-portal",
        }

    documents = await list_documents(db, storage, context)
    return {
        "user": to_user_info(context.user),
        "role": context.role,
        "documents": [d for d in documents if not d.uploaded_by_teacher],
        "feedback": [d for d in documents if d.uploaded_by_teacher],
    }


@router.get("/upload")
async def upload_page(context: SessionContext = Depends(get_session_context)):
    settings = get_settings()
    return {
        "user": to_user_info(context.user),
        "allowed_mime_types": settings.allowed_mime_types,
        "max_upload_bytes": settings.max_upload_bytes,
        "upload_endpoint": "/api/documents",
    }


@router.get("/teacher-portal")
async def teacher_portal_page(
    context: SessionContext = Depends(require_teacher),
    storage: BaaSStorageClient = Depends(get_user_storage),
    db: AsyncSession = Depends(get_db_session),
):
    documents = await list_documents(db, storage, context)
    return {
        "user": to_user_info(context.user),
        "students": await list_students(db),
        "documents_by_student": group_documents_by_student(documents),
    }
