"""
老师门户接口

- 学生列表（从学生上传过的文档推导）
- 全部文档，按来源过滤（学生上传 / 老师反馈），并按学生分组
- 给某个学生上传反馈文件
"""

from fastapi import APIRouter, Depends, File, Path, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import SessionContext, get_db_session, get_user_storage, require_teacher
from app.api.routes.documents import document_error, read_upload
from app.exceptions import DocumentOperationError, DocumentValidationError
from app.infra.baas_storage import BaaSStorageClient
from app.schemas.document import (
    DocumentOrigin,
    DocumentResponse,
    StudentSummary,
    TeacherDocumentsResponse,
)
from app.services.documents import (
    filter_by_origin,
    group_documents_by_student,
    list_documents,
    list_students,
    upload_document_for_student,
)

router = APIRouter(prefix="/api/teacher", tags=["teacher"])


@router.get("/students", response_model=list[StudentSummary])
async def list_students_endpoint(
    _: SessionContext = Depends(require_teacher),
    db: AsyncSession = Depends(get_db_session),
):
    return await list_students(db)


@router.get("/documents", response_model=TeacherDocumentsResponse)
async def teacher_documents_endpoint(
    origin: DocumentOrigin = Query("all", description="all / student / teacher"),
    context: SessionContext = Depends(require_teacher),
    storage: BaaSStorageClient = Depends(get_user_storage),
    db: AsyncSession = Depends(get_db_session),
):
    """全部文档（已换发签名地址），按来源过滤后再按学生分组"""
    items = filter_by_origin(await list_documents(db, storage, context), origin)
    return TeacherDocumentsResponse(
        origin=origin,
        items=items,
        students=group_documents_by_student(items),
    )


@router.post(
    "/students/{student_id}/documents",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_for_student_endpoint(
    student_id: str = Path(..., description="目标学生的用户 ID"),
    file: UploadFile = File(...),
    context: SessionContext = Depends(require_teacher),
    storage: BaaSStorageClient = Depends(get_user_storage),
    db: AsyncSession = Depends(get_db_session),
):
    """老师上传反馈文件到学生目录，行标记 uploaded_by_teacher"""
    upload = await read_upload(file)
    try:
        document = await upload_document_for_student(db, storage, context.user, student_id, upload)
    except (DocumentValidationError, DocumentOperationError) as exc:
        raise document_error(exc)
    return DocumentResponse.model_validate(document)
