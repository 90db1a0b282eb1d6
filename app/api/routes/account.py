"""
账号注销接口

POST /api/delete-account（无请求体，依赖会话 Cookie）

响应保持简单的约定，前端直接判断：
- 200 {"success": true}
- 401 {"error": "Unauthorized"}                        未登录
- 403 {"error": "...", "code": "TEACHER_ACCOUNT_PROTECTED"}  老师账号
- 500 {"error": "..."}                                 打乱认证信息失败
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    SessionContext,
    StorageFactory,
    get_auth_client,
    get_db_session,
    get_optional_session,
    get_role_resolver,
    get_storage_factory,
)
from app.exceptions import TeacherAccountProtectedError
from app.infra.baas_auth import BaaSAuthClient
from app.services.account import delete_account
from app.services.roles import RoleResolver

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/delete-account")
async def delete_account_endpoint(
    context: SessionContext | None = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db_session),
    auth: BaaSAuthClient = Depends(get_auth_client),
    resolver: RoleResolver = Depends(get_role_resolver),
    storage_factory: StorageFactory = Depends(get_storage_factory),
):
    """
    注销当前账号

    删除名下文件和文档行（单个失败不影响整体），打乱邮箱密码，所有设备登出。
    """
    if context is None:
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    try:
        report = await delete_account(
            db,
            storage_factory(context.access_token),
            auth,
            context,
            resolver,
        )
    except TeacherAccountProtectedError as exc:
        return JSONResponse(
            status_code=403,
            content={"error": str(exc), "code": "TEACHER_ACCOUNT_PROTECTED"},
        )

    if not report.success:
        return JSONResponse(
            status_code=500,
            content={"error": f"Failed to delete account: {report.error}"},
        )

    if report.warnings:
        logger.info(f"账号注销完成但有 {len(report.warnings)} 条警告: {report.warnings}")
    return {"success": True}
