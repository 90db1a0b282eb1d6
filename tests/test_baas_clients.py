"""
BaaS REST 客户端测试

用 httpx.MockTransport 模拟认证 / 存储服务，检查：
- 请求路径、头、参数
- 错误响应转换为 AuthError / StorageError
- 签名地址拼接
"""

import json

import httpx
import pytest

from app.config import Settings
from app.exceptions import AuthError, StorageError
from app.infra.baas_auth import BaaSAuthClient
from app.infra.baas_storage import BaaSStorageClient, build_storage_client

USER_PAYLOAD = {
    "id": "u1",
    "email": "alice@example.com",
    "email_confirmed_at": "2024-01-01T00:00:00Z",
    "user_metadata": {"full_name": "Alice"},
}


def storage_client(handler, token="user-token") -> BaaSStorageClient:
    return BaaSStorageClient(
        "http://baas.test/storage/v1",
        "anon",
        bucket="documents",
        access_token=token,
        transport=httpx.MockTransport(handler),
    )


def auth_client(handler, service_role_key=None) -> BaaSAuthClient:
    return BaaSAuthClient(
        "http://baas.test/auth/v1",
        "anon",
        service_role_key=service_role_key,
        transport=httpx.MockTransport(handler),
    )


class TestStorageClient:

    @pytest.mark.asyncio
    async def test_upload_sends_headers(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["path"] = request.url.path
            seen["headers"] = request.headers
            seen["body"] = request.content
            return httpx.Response(200, json={"Key": "documents/u1/a.pdf"})

        key = await storage_client(handler).upload("u1/a.pdf", b"%PDF", content_type="application/pdf")

        assert key == "documents/u1/a.pdf"
        assert seen["path"] == "/storage/v1/object/documents/u1/a.pdf"
        assert seen["headers"]["authorization"] == "Bearer user-token"
        assert seen["headers"]["apikey"] == "anon"
        assert seen["headers"]["x-upsert"] == "false"
        assert seen["headers"]["cache-control"] == "max-age=3600"
        assert seen["body"] == b"%PDF"

    @pytest.mark.asyncio
    async def test_signed_url_is_absolute(self):
        def handler(request: httpx.Request):
            assert json.loads(request.content) == {"expiresIn": 60}
            return httpx.Response(200, json={"signedURL": "/object/sign/documents/u1/a.pdf?token=abc"})

        url = await storage_client(handler).create_signed_url("u1/a.pdf", 60)
        assert url == "http://baas.test/storage/v1/object/sign/documents/u1/a.pdf?token=abc"

    @pytest.mark.asyncio
    async def test_missing_signed_url_raises(self):
        client = storage_client(lambda request: httpx.Response(200, json={}))
        with pytest.raises(StorageError):
            await client.create_signed_url("u1/a.pdf", 60)

    @pytest.mark.asyncio
    async def test_not_found_in_body_status(self):
        def handler(request: httpx.Request):
            return httpx.Response(400, json={"statusCode": "404", "error": "not_found", "message": "Object not found"})

        with pytest.raises(StorageError) as exc_info:
            await storage_client(handler).remove(["u1/a.pdf"])

        assert exc_info.value.status_code == 404
        assert exc_info.value.is_not_found

    @pytest.mark.asyncio
    async def test_permission_denied(self):
        def handler(request: httpx.Request):
            return httpx.Response(403, json={"message": "new row violates row-level security policy"})

        with pytest.raises(StorageError) as exc_info:
            await storage_client(handler).download("u2/a.pdf")
        assert exc_info.value.is_permission_denied

    @pytest.mark.asyncio
    async def test_download(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/storage/v1/object/authenticated/documents/u1/a.pdf"
            return httpx.Response(200, content=b"data", headers={"content-type": "application/pdf"})

        obj = await storage_client(handler).download("u1/a.pdf")
        assert obj.size == 4
        assert obj.content_type == "application/pdf"

    @pytest.mark.asyncio
    async def test_network_error_wrapped(self):
        def handler(request: httpx.Request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(StorageError) as exc_info:
            await storage_client(handler).get_bucket()
        assert "unavailable" in exc_info.value.message

    def test_public_url(self):
        client = storage_client(lambda request: httpx.Response(200))
        assert client.get_public_url("u1/a b.pdf") == (
            "http://baas.test/storage/v1/object/public/documents/u1/a%20b.pdf"
        )

    def test_anonymous_uses_api_key(self):
        client = storage_client(lambda request: httpx.Response(200), token=None)
        assert client._headers()["Authorization"] == "Bearer anon"

    def test_build_service_client(self):
        settings = Settings(baas_anon_key="anon", baas_service_role_key="service", storage_bucket="docs")
        client = build_storage_client(settings, "user-token", service=True)
        assert client.api_key == "service"
        assert client.access_token is None
        assert client.bucket == "docs"

        user_client = build_storage_client(settings, "user-token")
        assert user_client.api_key == "anon"
        assert user_client.access_token == "user-token"


class TestAuthClient:

    @pytest.mark.asyncio
    async def test_get_user(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/auth/v1/user"
            assert request.headers["authorization"] == "Bearer t1"
            return httpx.Response(200, json=USER_PAYLOAD)

        user = await auth_client(handler).get_user("t1")
        assert user.id == "u1"
        assert user.full_name == "Alice"
        assert user.is_email_confirmed

    @pytest.mark.asyncio
    async def test_invalid_token_maps_to_auth_error(self):
        client = auth_client(lambda request: httpx.Response(401, json={"msg": "invalid JWT"}))
        with pytest.raises(AuthError) as exc_info:
            await client.get_user("bad")
        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "invalid JWT"

    @pytest.mark.asyncio
    async def test_sign_in(self):
        def handler(request: httpx.Request):
            assert request.url.params["grant_type"] == "password"
            return httpx.Response(200, json={"access_token": "a", "refresh_token": "r", "expires_in": 3600, "user": USER_PAYLOAD})

        session = await auth_client(handler).sign_in_with_password("alice@example.com", "secret")
        assert session.access_token == "a"
        assert session.user.email == "alice@example.com"

    @pytest.mark.asyncio
    async def test_sign_out_scope(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["scope"] = request.url.params["scope"]
            return httpx.Response(204)

        await auth_client(handler).sign_out("t1", scope="global")
        assert seen["scope"] == "global"

    @pytest.mark.asyncio
    async def test_admin_update_requires_service_key(self):
        client = auth_client(lambda request: httpx.Response(200, json=USER_PAYLOAD))
        assert not client.has_admin_access
        with pytest.raises(AuthError):
            await client.admin_update_user("u1", email="x@deleted.account")

    @pytest.mark.asyncio
    async def test_admin_update(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=USER_PAYLOAD)

        await auth_client(handler, service_role_key="svc").admin_update_user(
            "u1", email="x@deleted.account", password="p", user_metadata={"deleted": True}
        )
        assert seen["path"] == "/auth/v1/admin/users/u1"
        assert seen["auth"] == "Bearer svc"
        assert seen["body"]["email_confirm"] is True
        assert seen["body"]["user_metadata"] == {"deleted": True}

    @pytest.mark.asyncio
    async def test_deleted_user_flag(self):
        payload = dict(USER_PAYLOAD, user_metadata={"deleted": True})
        user = await auth_client(lambda request: httpx.Response(200, json=payload)).get_user("t1")
        assert user.is_deleted
