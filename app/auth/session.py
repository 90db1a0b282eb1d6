"""
会话认证模块

门户的登录态由 BaaS 认证服务签发的 access token 表示：
1. 从 Cookie（sb-access-token）或 Authorization: Bearer 头读取 token
2. 调用认证服务换取当前用户（token 无效 / 过期 => 未登录）
3. 解析角色（student / teacher）
4. 返回会话上下文，供路由和业务服务使用

未登录时：
- get_optional_session 返回 None（用于页面网关、公开接口）
- get_session_context 抛出 401
"""

import logging
from dataclasses import dataclass
from functools import lru_cache

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.db.session import get_db
from app.exceptions import AuthError
from app.infra.baas_auth import AuthUser, BaaSAuthClient, get_auth_client
from app.infra.logging import mask_token, set_user_id
from app.models import ROLE_TEACHER
from app.services.roles import RoleResolver, build_role_resolver

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    """当前请求的会话上下文"""
    user: AuthUser
    role: str
    access_token: str

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def is_teacher(self) -> bool:
        return self.role == ROLE_TEACHER


@lru_cache(maxsize=1)
def get_role_resolver() -> RoleResolver:
    """角色解析器单例（老师缓存随进程存活）"""
    return build_role_resolver(get_settings())


def extract_access_token(request: Request) -> str | None:
    """从 Cookie 或 Authorization 头读取 access token"""
    settings = get_settings()
    header_val = request.headers.get("Authorization")
    if header_val and header_val.lower().startswith("bearer "):
        token = header_val.split(" ", 1)[1].strip()
        if token:
            return token
    return request.cookies.get(settings.session_cookie_name) or None


async def load_session_user(token: str | None, auth: BaaSAuthClient) -> AuthUser | None:
    """用 token 换取用户；token 缺失、无效或用户已注销时返回 None"""
    if not token:
        return None
    try:
        user = await auth.get_user(token)
    except AuthError as exc:
        logger.info(f"会话无效 (token={mask_token(token)}): {exc.message}")
        return None
    if user.is_deleted:
        logger.info(f"已注销的账号 {user.id} 尝试访问")
        return None
    return user


async def get_optional_session(
    request: Request,
    db: AsyncSession = Depends(get_db),
    auth: BaaSAuthClient = Depends(get_auth_client),
    resolver: RoleResolver = Depends(get_role_resolver),
) -> SessionContext | None:
    token = extract_access_token(request)
    user = await load_session_user(token, auth)
    if user is None:
        return None

    role = await resolver.resolve(user, db)
    set_user_id(user.id)
    request.state.user_id = user.id
    return SessionContext(user=user, role=role, access_token=token)


async def get_session_context(
    context: SessionContext | None = Depends(get_optional_session),
) -> SessionContext:
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "UNAUTHORIZED", "detail": "No active session"},
        )
    return context


async def require_teacher(
    context: SessionContext = Depends(get_session_context),
) -> SessionContext:
    if not context.is_teacher:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "FORBIDDEN", "detail": "Teacher role required"},
        )
    return context
