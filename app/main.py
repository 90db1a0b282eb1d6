"""
FastAPI 应用实例

负责：
1. 创建 FastAPI 应用实例
2. 配置应用生命周期（建表、存储桶检查）
3. 注册所有 API 路由
4. 配置结构化日志、请求追踪、审计和页面网关
5. 统一错误响应格式 {"detail", "code"}
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import api_router
from app.config import get_settings
from app.db.session import init_models
from app.exceptions import (
    BaaSError,
    DocumentNotFoundError,
    DocumentValidationError,
    ForumTopicNotFoundError,
    ForumValidationError,
    StorageError,
    TeacherAccountProtectedError,
)
from app.infra.baas_storage import build_storage_client
from app.infra.logging import get_logger, setup_logging
from app.middleware import AccessGateMiddleware, AuditLogMiddleware, RequestTraceMiddleware

setup_logging()
logger = get_logger(__name__)

settings = get_settings()


async def _check_storage_bucket():
    """
    启动时检查文档存储桶

    桶不存在或被设成公开时只打印警告：上传会失败 / 文件可以被未登录用户直接访问。
    """
    storage = build_storage_client(settings, service=True)
    try:
        bucket = await storage.get_bucket()
    except StorageError as e:
        if e.is_not_found:
            logger.warning(f"存储桶 {settings.storage_bucket} 不存在，可通过 POST /debug/storage/bucket 创建")
        else:
            logger.warning(f"无法检查存储桶 {settings.storage_bucket}: {e.message}")
        return
    if bucket.get("public"):
        logger.warning(f"存储桶 {settings.storage_bucket} 是公开的，文档不经过签名即可访问")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理器

    注意：
        - 开发环境：使用 init_models() 自动建表
        - 其他环境：使用 Alembic 迁移
    """
    logger.info(f"应用启动中... 环境: {settings.environment}")

    if settings.environment in ("dev", "development"):
        await init_models()
        logger.info("数据库表初始化完成（开发模式）")
    else:
        logger.info("跳过自动建表，请使用 Alembic 迁移")

    if settings.environment != "test":
        await _check_storage_bucket()

    if settings.auth_bypass:
        logger.warning("AUTH_BYPASS 已开启，页面网关不做任何登录检查")

    yield


app = FastAPI(
    title=settings.app_name,
    lifespan=lifespan,
)

# 注册中间件（注意顺序：后添加的先执行）
app.add_middleware(AuditLogMiddleware)  # 审计日志
app.add_middleware(AccessGateMiddleware)  # 页面网关
app.add_middleware(RequestTraceMiddleware)  # 请求追踪

# CORS 配置：会话走 Cookie，需要列出具体来源
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


def _error(status_code: int, detail, code: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code}, headers=headers)


@app.exception_handler(HTTPException)
async def http_exception_handler(_: Request, exc: HTTPException):
    """
    统一错误响应格式：
    {
        "detail": "<错误信息>",
        "code": "<ERROR_CODE>"
    }
    """
    code = "UNKNOWN_ERROR"
    detail = exc.detail
    if isinstance(exc.detail, dict):
        code = exc.detail.get("code") or code
        detail = exc.detail.get("detail") or exc.detail.get("message") or detail
    return _error(exc.status_code, detail, code, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_: Request, exc: RequestValidationError):
    # Pydantic 校验错误统一映射为 VALIDATION_ERROR
    return _error(422, exc.errors(), "VALIDATION_ERROR")


# 路由没有单独转换的领域异常
@app.exception_handler(DocumentValidationError)
@app.exception_handler(ForumValidationError)
async def domain_validation_handler(_: Request, exc: Exception):
    return _error(400, str(exc), "VALIDATION_ERROR")


@app.exception_handler(DocumentNotFoundError)
@app.exception_handler(ForumTopicNotFoundError)
async def not_found_handler(_: Request, exc: Exception):
    return _error(404, str(exc), "NOT_FOUND")


@app.exception_handler(TeacherAccountProtectedError)
async def teacher_protected_handler(_: Request, exc: TeacherAccountProtectedError):
    return _error(403, str(exc), "TEACHER_ACCOUNT_PROTECTED")


@app.exception_handler(BaaSError)
async def baas_exception_handler(_: Request, exc: BaaSError):
    logger.error(f"BaaS 调用失败: {exc.message} (status={exc.status_code})")
    return _error(502, exc.message, "BAAS_ERROR")
