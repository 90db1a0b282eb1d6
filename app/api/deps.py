"""
API 依赖注入函数

这个模块定义了所有 API 路由共用的依赖项。
FastAPI 的依赖注入系统会自动调用这些函数，并将结果注入到路由处理函数中。
测试中通过 app.dependency_overrides 替换存储 / 认证客户端。

使用示例：
    @router.get("/example")
    async def example_endpoint(
        context=Depends(get_session_context),    # 当前登录用户，未登录 401
        storage=Depends(get_user_storage),       # 以当前用户身份访问存储
        db=Depends(get_db_session),              # 数据库会话
    ):
        pass
"""

from typing import Callable

from fastapi import Depends

from app.auth.session import (
    SessionContext,
    get_optional_session,
    get_role_resolver,
    get_session_context,
    require_teacher,
)
from app.config import get_settings
from app.db.session import get_db
from app.infra.baas_auth import get_auth_client
from app.infra.baas_storage import BaaSStorageClient, build_storage_client

StorageFactory = Callable[[str | None], BaaSStorageClient]


def get_storage_factory() -> StorageFactory:
    """按 access token 构建存储客户端的工厂"""
    settings = get_settings()
    return lambda access_token: build_storage_client(settings, access_token)


async def get_user_storage(
    context: SessionContext = Depends(get_session_context),
    factory: StorageFactory = Depends(get_storage_factory),
) -> BaaSStorageClient:
    """以当前登录用户身份访问对象存储"""
    return factory(context.access_token)


async def get_service_storage() -> BaaSStorageClient:
    """维护 / 诊断接口使用的存储客户端（service role key）"""
    return build_storage_client(get_settings(), service=True)


# 重新导出，方便路由模块统一从这里导入
get_db_session = get_db

__all__ = [
    "SessionContext",
    "StorageFactory",
    "get_auth_client",
    "get_db_session",
    "get_optional_session",
    "get_role_resolver",
    "get_service_storage",
    "get_storage_factory",
    "get_session_context",
    "get_user_storage",
    "require_teacher",
]
