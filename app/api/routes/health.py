"""
健康检查接口

- /healthz：存活探测，不访问数据库和 BaaS
- /readyz：就绪探测，执行一次 SELECT 1 检查数据库连接
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/healthz")
async def healthcheck() -> dict:
    settings = get_settings()
    return {"status": "ok", "service": settings.app_name, "environment": settings.environment}


@router.get("/readyz")
async def readiness(db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error(f"就绪检查失败，数据库不可用: {exc}")
        return JSONResponse(status_code=503, content={"status": "unavailable", "database": str(exc)})
    return {"status": "ok", "database": "ok"}
