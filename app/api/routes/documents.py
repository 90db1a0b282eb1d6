"""
文档管理接口

学生上传、查看、删除自己的文档；老师在这里能看到全部文档。
文件存放在 BaaS 对象存储，元信息存放在 documents 表。
"""

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Path, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import SessionContext, get_db_session, get_session_context, get_user_storage
from app.exceptions import DocumentNotFoundError, DocumentOperationError, DocumentValidationError
from app.infra.baas_storage import BaaSStorageClient
from app.schemas.document import DocumentDeleteResponse, DocumentListResponse, DocumentResponse
from app.services.documents import UploadedFile, delete_document, list_documents, upload_document

logger = logging.getLogger(__name__)

router = APIRouter()


async def read_upload(file: UploadFile) -> UploadedFile:
    content = await file.read()
    return UploadedFile(
        file_name=file.filename or "upload",
        content_type=file.content_type or "",
        content=content,
    )


def document_error(exc: Exception) -> HTTPException:
    """把文档服务的异常转换为 HTTP 错误"""
    if isinstance(exc, DocumentValidationError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "VALIDATION_ERROR", "detail": str(exc)},
        )
    if isinstance(exc, DocumentNotFoundError):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "DOCUMENT_NOT_FOUND", "detail": "Document not found"},
        )
    message = exc.message if isinstance(exc, DocumentOperationError) else str(exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"code": "DOCUMENT_OPERATION_FAILED", "detail": message},
    )


@router.get("/api/documents", response_model=DocumentListResponse)
async def list_documents_endpoint(
    context: SessionContext = Depends(get_session_context),
    storage: BaaSStorageClient = Depends(get_user_storage),
    db: AsyncSession = Depends(get_db_session),
):
    """
    文档列表

    学生只返回自己的文档，老师返回全部；按上传时间倒序。
    每一行都会换发新的签名地址，换发失败的行保留原地址。
    """
    items = await list_documents(db, storage, context)
    return DocumentListResponse(items=items, total=len(items))


@router.post(
    "/api/documents",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_document_endpoint(
    file: UploadFile = File(..., description="PDF 或 PNG，不超过 10MB"),
    context: SessionContext = Depends(get_session_context),
    storage: BaaSStorageClient = Depends(get_user_storage),
    db: AsyncSession = Depends(get_db_session),
):
    """上传文档（存储路径为 <user_id>/<随机名>_<时间戳>.<扩展名>）"""
    upload = await read_upload(file)
    try:
        document = await upload_document(db, storage, context.user, upload)
    except (DocumentValidationError, DocumentOperationError) as exc:
        raise document_error(exc)
    return DocumentResponse.model_validate(document)


@router.delete("/api/documents/{document_id}", response_model=DocumentDeleteResponse)
async def delete_document_endpoint(
    document_id: str = Path(..., description="Document ID"),
    context: SessionContext = Depends(get_session_context),
    storage: BaaSStorageClient = Depends(get_user_storage),
    db: AsyncSession = Depends(get_db_session),
):
    """
    删除文档

    先删存储文件再删行；文件删除失败时行保留，可以重试。
    """
    try:
        await delete_document(db, storage, context, document_id)
    except (DocumentNotFoundError, DocumentOperationError) as exc:
        raise document_error(exc)
    return DocumentDeleteResponse(document_id=document_id)
