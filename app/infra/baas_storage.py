"""
BaaS 对象存储客户端

封装存储服务的 REST 接口：上传、批量删除、下载、签名地址、公开地址、存储桶管理。
签名地址的加密、文件持久化都由存储服务负责。

同一个存储桶里的路径约定为 <user_id>/<文件名>，访问权限由存储服务的策略控制，
所以客户端默认带上当前用户的 access token。

使用示例：
    storage = BaaSStorageClient(settings.storage_base_url, settings.baas_anon_key,
                                bucket="documents", access_token=token)
    await storage.upload("uid/a.pdf", data, content_type="application/pdf")
    url = await storage.create_signed_url("uid/a.pdf", 3600)
"""

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from app.config import Settings
from app.exceptions import StorageError

logger = logging.getLogger(__name__)


@dataclass
class DownloadedObject:
    """下载结果"""
    content: bytes
    content_type: str | None

    @property
    def size(self) -> int:
        return len(self.content)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("message", "error", "msg"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {response.status_code}"


def _status_code(response: httpx.Response) -> int:
    """存储服务有时把真实状态码放在 body.statusCode 里（外层仍是 400）"""
    try:
        body = response.json()
    except ValueError:
        return response.status_code
    if isinstance(body, dict) and body.get("statusCode"):
        try:
            return int(body["statusCode"])
        except (TypeError, ValueError):
            pass
    return response.status_code


class BaaSStorageClient:
    """对象存储 REST 客户端（绑定一个存储桶）"""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        bucket: str,
        access_token: str | None = None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.bucket = bucket
        self.access_token = access_token
        self.timeout = timeout
        self._transport = transport

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    def _object_path(self, path: str) -> str:
        return f"{self.bucket}/{quote(path.lstrip('/'), safe='/')}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.request(
                    method,
                    path,
                    headers=self._headers(headers),
                    json=json,
                    content=content,
                )
            except httpx.HTTPError as exc:
                raise StorageError(f"Storage service unavailable: {exc}") from exc

        if response.status_code >= 400:
            raise StorageError(_error_message(response), status_code=_status_code(response))
        return response

    async def upload(
        self,
        path: str,
        content: bytes,
        *,
        content_type: str,
        cache_control: str = "3600",
        upsert: bool = False,
    ) -> str:
        """上传文件，返回存储中的 key。upsert=False 时同名文件会报错"""
        response = await self._request(
            "POST",
            f"/object/{self._object_path(path)}",
            content=content,
            headers={
                "Content-Type": content_type,
                "Cache-Control": f"max-age={cache_control}",
                "x-upsert": "true" if upsert else "false",
            },
        )
        body = response.json() if response.content else {}
        return body.get("Key") or f"{self.bucket}/{path}"

    async def remove(self, paths: list[str]) -> list[dict]:
        """批量删除文件，返回被删除对象的列表（不存在的路径不会出现在结果里）"""
        if not paths:
            return []
        response = await self._request(
            "DELETE",
            f"/object/{self.bucket}",
            json={"prefixes": paths},
        )
        return response.json() if response.content else []

    async def download(self, path: str) -> DownloadedObject:
        response = await self._request("GET", f"/object/authenticated/{self._object_path(path)}")
        return DownloadedObject(
            content=response.content,
            content_type=response.headers.get("content-type"),
        )

    async def create_signed_url(self, path: str, expires_in: int) -> str:
        """生成带时效的签名地址（完整 URL）"""
        response = await self._request(
            "POST",
            f"/object/sign/{self._object_path(path)}",
            json={"expiresIn": expires_in},
        )
        signed = response.json().get("signedURL") or response.json().get("signedUrl")
        if not signed:
            raise StorageError(f"No signed URL returned for {path}")
        return f"{self.base_url}{signed}" if signed.startswith("/") else signed

    def get_public_url(self, path: str) -> str:
        """公开地址，只做字符串拼接（私有桶里的文件用这个地址是打不开的）"""
        return f"{self.base_url}/object/public/{self._object_path(path)}"

    async def get_bucket(self, bucket_id: str | None = None) -> dict:
        response = await self._request("GET", f"/bucket/{bucket_id or self.bucket}")
        return response.json()

    async def create_bucket(self, bucket_id: str | None = None, *, public: bool = False) -> dict:
        bucket_id = bucket_id or self.bucket
        response = await self._request(
            "POST",
            "/bucket",
            json={"id": bucket_id, "name": bucket_id, "public": public},
        )
        return response.json()


def build_storage_client(
    settings: Settings,
    access_token: str | None = None,
    *,
    service: bool = False,
) -> BaaSStorageClient:
    """
    构建存储客户端

    - 默认以当前用户身份访问（anon key + 用户 token）
    - service=True 时使用 service role key（未配置则退回 anon key），用于维护任务
    """
    api_key = settings.baas_anon_key
    if service:
        if settings.baas_service_role_key:
            api_key = settings.baas_service_role_key
        else:
            logger.warning("BAAS_SERVICE_ROLE_KEY 未配置，维护任务使用 anon key 访问存储")
    return BaaSStorageClient(
        settings.storage_base_url,
        api_key,
        bucket=settings.storage_bucket,
        access_token=None if service else access_token,
        timeout=settings.baas_timeout_seconds,
    )
