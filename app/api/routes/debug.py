"""
调试接口（始终开放，不经过页面网关）

- GET  /debug/session:         当前请求解析出的会话和角色
- GET  /debug/storage/bucket:  文档存储桶信息
- POST /debug/storage/bucket:  创建文档存储桶（固定为私有桶）
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.api.deps import SessionContext, get_optional_session, get_service_storage
from app.api.routes.auth import to_user_info
from app.auth.session import extract_access_token
from app.config import get_settings
from app.exceptions import StorageError
from app.infra.baas_storage import BaaSStorageClient

router = APIRouter(prefix="/debug", tags=["debug"])


def storage_error(exc: StorageError) -> HTTPException:
    code = status.HTTP_404_NOT_FOUND if exc.is_not_found else status.HTTP_502_BAD_GATEWAY
    return HTTPException(status_code=code, detail={"code": "STORAGE_ERROR", "detail": exc.message})


@router.get("/session")
async def debug_session(
    request: Request,
    context: SessionContext | None = Depends(get_optional_session),
):
    settings = get_settings()
    return {
        "has_token": extract_access_token(request) is not None,
        "user": to_user_info(context.user).model_dump() if context else None,
        "role": context.role if context else None,
        "role_strategy": settings.role_strategy,
        "auth_bypass": settings.auth_bypass,
    }


@router.get("/storage/bucket")
async def get_bucket(storage: BaaSStorageClient = Depends(get_service_storage)):
    try:
        return await storage.get_bucket()
    except StorageError as exc:
        raise storage_error(exc)


@router.post("/storage/bucket", status_code=status.HTTP_201_CREATED)
async def create_bucket(storage: BaaSStorageClient = Depends(get_service_storage)):
    """文档只通过签名地址访问，这里不接受任何参数，桶始终是私有的"""
    try:
        return await storage.create_bucket(public=False)
    except StorageError as exc:
        raise storage_error(exc)
