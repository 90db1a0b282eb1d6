"""
BaaS 认证客户端

封装认证服务的 REST 接口（注册、登录、获取用户、更新用户、登出、重置密码）。
密码哈希、token 签发、邮件验证都由认证服务完成，这里只负责调用和错误转换。

使用示例：
    from app.infra.baas_auth import get_auth_client

    auth = get_auth_client()
    session = await auth.sign_in_with_password("a@b.com", "secret")
    user = await auth.get_user(session.access_token)
"""

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Literal

import httpx

from app.config import get_settings
from app.exceptions import AuthError

logger = logging.getLogger(__name__)

SignOutScope = Literal["local", "global", "others"]


@dataclass
class AuthUser:
    """认证服务中的用户（只保留本服务用到的字段）"""
    id: str
    email: str | None = None
    email_confirmed_at: str | None = None
    user_metadata: dict[str, Any] = field(default_factory=dict)
    app_metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "AuthUser":
        return cls(
            id=payload["id"],
            email=payload.get("email"),
            email_confirmed_at=payload.get("email_confirmed_at") or payload.get("confirmed_at"),
            user_metadata=payload.get("user_metadata") or {},
            app_metadata=payload.get("app_metadata") or {},
        )

    @property
    def full_name(self) -> str | None:
        return self.user_metadata.get("full_name")

    @property
    def is_deleted(self) -> bool:
        return bool(self.user_metadata.get("deleted"))

    @property
    def is_email_confirmed(self) -> bool:
        return bool(self.email_confirmed_at)


@dataclass
class AuthSession:
    """登录会话"""
    access_token: str
    user: AuthUser
    refresh_token: str | None = None
    expires_in: int | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "AuthSession":
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_in=payload.get("expires_in"),
            user=AuthUser.from_payload(payload["user"]),
        )


def _error_message(response: httpx.Response) -> str:
    """从认证服务的错误响应中提取可读信息"""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("msg", "error_description", "message", "error"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {response.status_code}"


class BaaSAuthClient:
    """
    认证服务 REST 客户端

    - 普通接口使用 anon key + 用户 access token
    - admin 接口（admin_update_user）需要 service role key
    - 每次调用新建 httpx.AsyncClient，超时使用 baas_timeout_seconds
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        service_role_key: str | None = None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.service_role_key = service_role_key
        self.timeout = timeout
        self._transport = transport

    @property
    def has_admin_access(self) -> bool:
        return bool(self.service_role_key)

    def _headers(self, access_token: str | None = None, admin: bool = False) -> dict[str, str]:
        if admin:
            if not self.service_role_key:
                raise AuthError("service role key is not configured")
            return {
                "apikey": self.service_role_key,
                "Authorization": f"Bearer {self.service_role_key}",
            }
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {access_token or self.api_key}",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        access_token: str | None = None,
        admin: bool = False,
        json: dict | None = None,
        params: dict | None = None,
    ) -> dict[str, Any]:
        headers = self._headers(access_token, admin=admin)
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.request(method, path, headers=headers, json=json, params=params)
            except httpx.HTTPError as exc:
                raise AuthError(f"Auth service unavailable: {exc}") from exc

        if response.status_code >= 400:
            raise AuthError(_error_message(response), status_code=response.status_code)
        if not response.content:
            return {}
        return response.json()

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: dict[str, Any] | None = None,
        redirect_to: str | None = None,
    ) -> AuthUser:
        """注册。开启邮箱验证时返回的是用户对象，否则是带 user 的会话对象"""
        payload = await self._request(
            "POST",
            "/signup",
            json={"email": email, "password": password, "data": metadata or {}},
            params={"redirect_to": redirect_to} if redirect_to else None,
        )
        return AuthUser.from_payload(payload.get("user") or payload)

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        payload = await self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return AuthSession.from_payload(payload)

    async def get_user(self, access_token: str) -> AuthUser:
        """用 access token 换取当前用户，token 无效时抛 AuthError(401)"""
        payload = await self._request("GET", "/user", access_token=access_token)
        return AuthUser.from_payload(payload)

    async def update_user(
        self,
        access_token: str,
        *,
        email: str | None = None,
        password: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> AuthUser:
        body: dict[str, Any] = {}
        if email is not None:
            body["email"] = email
        if password is not None:
            body["password"] = password
        if data is not None:
            body["data"] = data
        payload = await self._request("PUT", "/user", access_token=access_token, json=body)
        return AuthUser.from_payload(payload)

    async def admin_update_user(
        self,
        user_id: str,
        *,
        email: str | None = None,
        password: str | None = None,
        user_metadata: dict[str, Any] | None = None,
    ) -> AuthUser:
        """以 service role 身份更新用户，新邮箱直接确认，不发验证邮件"""
        body: dict[str, Any] = {}
        if email is not None:
            body["email"] = email
            body["email_confirm"] = True
        if password is not None:
            body["password"] = password
        if user_metadata is not None:
            body["user_metadata"] = user_metadata
        payload = await self._request("PUT", f"/admin/users/{user_id}", admin=True, json=body)
        return AuthUser.from_payload(payload)

    async def sign_out(self, access_token: str, scope: SignOutScope = "local") -> None:
        """登出。scope=global 会让该用户所有设备上的会话失效"""
        await self._request("POST", "/logout", access_token=access_token, params={"scope": scope})

    async def reset_password_for_email(self, email: str, redirect_to: str | None = None) -> None:
        await self._request(
            "POST",
            "/recover",
            json={"email": email},
            params={"redirect_to": redirect_to} if redirect_to else None,
        )


@lru_cache(maxsize=1)
def get_auth_client() -> BaaSAuthClient:
    """获取认证客户端（单例）"""
    settings = get_settings()
    if not settings.baas_anon_key:
        logger.warning("BAAS_ANON_KEY 未配置，认证接口调用将会失败")
    return BaaSAuthClient(
        settings.auth_base_url,
        settings.baas_anon_key,
        service_role_key=settings.baas_service_role_key,
        timeout=settings.baas_timeout_seconds,
    )
