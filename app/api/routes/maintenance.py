"""
维护与诊断接口

- GET  /api/refresh-urls:      为所有文档重签 7 天地址并写回数据库
- POST /api/test-file-access:  检查某个存储路径能否下载、签名、拼出公开地址
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    SessionContext,
    StorageFactory,
    get_db_session,
    get_optional_session,
    get_service_storage,
    get_storage_factory,
)
from app.config import get_settings
from app.exceptions import StorageError
from app.infra.baas_storage import BaaSStorageClient
from app.schemas.document import FileAccessRequest, RefreshUrlsResponse
from app.services.documents import refresh_all_document_urls

logger = logging.getLogger(__name__)

router = APIRouter(tags=["maintenance"])


@router.get("/api/refresh-urls", response_model=RefreshUrlsResponse, response_model_exclude_none=True)
async def refresh_urls_endpoint(
    storage: BaaSStorageClient = Depends(get_service_storage),
    db: AsyncSession = Depends(get_db_session),
):
    """
    批量刷新文档地址

    单行失败只计入 results.errors，不影响其他行。
    """
    try:
        results = await refresh_all_document_urls(db, storage)
    except Exception as exc:
        logger.error(f"批量刷新地址失败: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})

    if results.total == 0:
        return RefreshUrlsResponse(message="No documents found to update")
    return RefreshUrlsResponse(
        message=f"Updated {results.success} of {results.total} document URLs",
        results=results,
    )


@router.post("/api/test-file-access")
async def test_file_access_endpoint(
    payload: FileAccessRequest,
    context: SessionContext | None = Depends(get_optional_session),
    storage_factory: StorageFactory = Depends(get_storage_factory),
):
    """
    文件访问诊断（以当前用户身份，未登录则用匿名身份）

    - 400: 缺少 filePath
    - 403: 存储拒绝访问
    - 500: 其他下载 / 签名错误
    """
    if not payload.filePath:
        return JSONResponse(status_code=400, content={"error": "File path is required"})

    settings = get_settings()
    storage = storage_factory(context.access_token if context else None)
    file_path = payload.filePath

    try:
        downloaded = await storage.download(file_path)
    except StorageError as exc:
        if exc.is_permission_denied:
            return JSONResponse(
                status_code=403,
                content={
                    "success": False,
                    "error": "Permission denied. The current user cannot access this file.",
                    "details": {"message": exc.message, "statusCode": exc.status_code},
                },
            )
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": exc.message,
                "details": {"message": exc.message, "statusCode": exc.status_code},
            },
        )

    try:
        signed_url = await storage.create_signed_url(
            file_path, settings.diagnostic_signed_url_expiry_seconds
        )
    except StorageError as exc:
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "File found but could not create signed URL",
                "details": {"message": exc.message, "statusCode": exc.status_code},
                "downloadSuccess": True,
            },
        )

    return {
        "success": True,
        "message": "File access test successful",
        "fileSize": downloaded.size,
        "fileType": downloaded.content_type,
        "signedUrl": signed_url,
        "publicUrl": storage.get_public_url(file_path),
    }
