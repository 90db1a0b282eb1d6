"""
页面访问网关中间件

按路径把请求分为三类：
- 受保护页面（protected_routes）：需要登录，否则 307 跳转到登录页，
  并带上 redirectedFrom=<原路径>
- 仅限未登录页面（auth_routes，如 /login /signup）：已登录时跳转到 dashboard
- 始终开放（always_open_routes，如 /debug）：不做任何检查

auth_bypass=True 时整个网关不生效，所有路径直接放行。
/api 下的接口不经过网关，由各自的会话依赖返回 401。
"""

from typing import Awaitable, Callable
from urllib.parse import quote

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response
from starlette.types import ASGIApp

from app.auth.session import extract_access_token, load_session_user
from app.config import Settings, get_settings
from app.infra.baas_auth import AuthUser, get_auth_client
from app.infra.logging import get_logger

logger = get_logger(__name__)

SessionLoader = Callable[[str | None], Awaitable[AuthUser | None]]


def _matches(path: str, prefixes: list[str]) -> bool:
    for prefix in prefixes:
        prefix = prefix.rstrip("/")
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False


def _is_exact(path: str, routes: list[str]) -> bool:
    """登录 / 注册页只按完整路径匹配"""
    path = path.rstrip("/") or "/"
    return any(path == (route.rstrip("/") or "/") for route in routes)


async def _default_session_loader(token: str | None) -> AuthUser | None:
    return await load_session_user(token, get_auth_client())


class AccessGateMiddleware(BaseHTTPMiddleware):
    """页面访问网关"""

    def __init__(
        self,
        app: ASGIApp,
        settings: Settings | None = None,
        session_loader: SessionLoader | None = None,
    ) -> None:
        super().__init__(app)
        self._settings = settings
        self._session_loader = session_loader or _default_session_loader

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        settings = self.settings
        path = request.url.path

        if settings.auth_bypass or _matches(path, settings.always_open_routes):
            return await call_next(request)

        is_protected = _matches(path, settings.protected_routes)
        is_auth_page = _is_exact(path, settings.auth_routes)
        if not is_protected and not is_auth_page:
            return await call_next(request)

        user = await self._session_loader(extract_access_token(request))

        if is_protected and user is None:
            target = f"{settings.login_path}?redirectedFrom={quote(path, safe='/')}"
            logger.info(f"未登录访问受保护页面，跳转登录: {path}")
            return RedirectResponse(target, status_code=307)

        if is_auth_page and user is not None:
            return RedirectResponse(settings.post_login_path, status_code=307)

        return await call_next(request)
