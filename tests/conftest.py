"""
测试公共夹具

- 内存 SQLite（aiosqlite）代替 BaaS 的 Postgres
- FakeStorage / FakeAuth 代替对象存储和认证服务，记录调用并支持按路径注入失败
- api_client：通过 httpx.ASGITransport 调用应用，依赖全部替换为上面的假对象
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("AUDIT_ENABLED", "false")
os.environ.setdefault("BAAS_ANON_KEY", "test-anon-key")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.auth.session import SessionContext, get_role_resolver
from app.db.base import Base
from app.db.session import get_db
from app.exceptions import AuthError, StorageError
from app.infra.baas_auth import AuthSession, AuthUser, get_auth_client
from app.infra.baas_storage import DownloadedObject
from app.services.roles import MemoryRoleCache, RoleResolver, TableRoleStrategy

TEACHER_EMAIL = "teacher@example.com"


class FakeStorage:
    """内存对象存储"""

    def __init__(self, base_url: str = "http://baas.test/storage/v1", bucket: str = "documents"):
        self.base_url = base_url
        self.bucket = bucket
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_upload = False
        self.fail_sign: set[str] = set()
        self.fail_remove: set[str] = set()
        self.forbidden: set[str] = set()
        self.buckets: dict[str, dict] = {}

    async def upload(self, path, content, *, content_type, cache_control="3600", upsert=False):
        self.calls.append(("upload", path))
        if self.fail_upload:
            raise StorageError("Upload failed", status_code=500)
        self.objects[path] = (content, content_type)
        return {"Key": f"{self.bucket}/{path}"}

    async def remove(self, paths):
        removed = []
        for path in paths:
            self.calls.append(("remove", path))
            if path in self.fail_remove:
                raise StorageError("Internal storage error", status_code=500)
            if path not in self.objects:
                raise StorageError("Object not found", status_code=404)
            del self.objects[path]
            removed.append({"name": path})
        return removed

    async def download(self, path):
        self.calls.append(("download", path))
        if path in self.forbidden:
            raise StorageError("Permission denied", status_code=403)
        if path not in self.objects:
            raise StorageError("Object not found", status_code=404)
        content, content_type = self.objects[path]
        return DownloadedObject(content=content, content_type=content_type)

    async def create_signed_url(self, path, expires_in):
        self.calls.append(("sign", path))
        if path in self.fail_sign:
            raise StorageError("Failed to sign", status_code=500)
        return f"{self.base_url}/object/sign/{self.bucket}/{path}?token=fresh&expires={expires_in}"

    def get_public_url(self, path):
        return f"{self.base_url}/object/public/{self.bucket}/{path}"

    async def get_bucket(self, bucket_id=None):
        bucket_id = bucket_id or self.bucket
        if bucket_id not in self.buckets:
            raise StorageError("Bucket not found", status_code=404)
        return self.buckets[bucket_id]

    async def create_bucket(self, bucket_id=None, *, public=False):
        bucket_id = bucket_id or self.bucket
        self.buckets[bucket_id] = {"id": bucket_id, "name": bucket_id, "public": public}
        return {"name": bucket_id}


class FakeAuth:
    """内存认证服务，token -> 用户"""

    def __init__(self, admin: bool = False):
        self.admin = admin
        self.users: dict[str, AuthUser] = {}
        self.calls: list[tuple] = []
        self.fail_update = False
        self.fail_sign_out = False

    @property
    def has_admin_access(self) -> bool:
        return self.admin

    def login_as(self, user: AuthUser, token: str | None = None) -> str:
        token = token or f"token-{user.id}"
        self.users[token] = user
        return token

    async def get_user(self, access_token):
        user = self.users.get(access_token)
        if user is None:
            raise AuthError("invalid JWT", status_code=401)
        return user

    async def update_user(self, access_token, *, email=None, password=None, data=None):
        self.calls.append(("update_user", access_token, email, password, data))
        if self.fail_update:
            raise AuthError("update failed", status_code=500)
        return await self.get_user(access_token)

    async def admin_update_user(self, user_id, *, email=None, password=None, user_metadata=None):
        self.calls.append(("admin_update_user", user_id, email, password, user_metadata))
        if self.fail_update:
            raise AuthError("update failed", status_code=500)
        return AuthUser(id=user_id, email=email, user_metadata=user_metadata or {})

    async def sign_out(self, access_token, scope="local"):
        self.calls.append(("sign_out", access_token, scope))
        if self.fail_sign_out:
            raise AuthError("sign out failed", status_code=500)

    async def sign_up(self, email, password, metadata=None, redirect_to=None):
        self.calls.append(("sign_up", email, redirect_to))
        return AuthUser(id=f"new-{email.split('@')[0]}", email=email, user_metadata=metadata or {})

    async def sign_in_with_password(self, email, password):
        self.calls.append(("sign_in", email))
        for token, user in self.users.items():
            if user.email == email:
                return AuthSession(access_token=token, user=user, refresh_token="refresh", expires_in=3600)
        raise AuthError("Invalid login credentials", status_code=400)

    async def reset_password_for_email(self, email, redirect_to=None):
        self.calls.append(("reset_password", email, redirect_to))


def make_user(user_id: str = "student-1", email: str | None = "student@example.com", **metadata) -> AuthUser:
    return AuthUser(
        id=user_id,
        email=email,
        email_confirmed_at="2024-01-01T00:00:00Z",
        user_metadata=metadata,
    )


def make_context(user: AuthUser, role: str = "student", token: str | None = None) -> SessionContext:
    return SessionContext(user=user, role=role, access_token=token or f"token-{user.id}")


@pytest.fixture
def student():
    return make_user("student-1", "alice@example.com", full_name="Alice Zhang")


@pytest.fixture
def teacher():
    return make_user("teacher-1", TEACHER_EMAIL, full_name="Ms Li")


@pytest.fixture
def student_ctx(student):
    return make_context(student, "student")


@pytest.fixture
def teacher_ctx(teacher):
    return make_context(teacher, "teacher")


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def fake_auth():
    return FakeAuth()


@pytest.fixture
def role_cache():
    return MemoryRoleCache()


@pytest.fixture
def resolver(role_cache):
    return RoleResolver(TableRoleStrategy(role_cache), role_cache)


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def api_client(session_maker, fake_auth, fake_storage, resolver, monkeypatch):
    """调用完整应用的异步客户端，BaaS 和数据库都替换为测试对象"""
    from app.api.deps import get_service_storage, get_storage_factory
    from app.main import app

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_auth_client] = lambda: fake_auth
    app.dependency_overrides[get_role_resolver] = lambda: resolver
    app.dependency_overrides[get_storage_factory] = lambda: (lambda access_token: fake_storage)
    app.dependency_overrides[get_service_storage] = lambda: fake_storage
    monkeypatch.setattr("app.middleware.access_gate.get_auth_client", lambda: fake_auth)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def user_factory():
    return make_user


@pytest.fixture
def context_factory():
    return make_context


@pytest.fixture
def seed_document(session_maker, fake_storage):
    """写入一行文档（默认同时在存储里放一个对应文件）"""
    from app.models import Document

    async def _seed(
        user_id: str,
        file_path: str | None = None,
        *,
        with_blob: bool = True,
        **fields,
    ) -> Document:
        file_path = file_path or f"{user_id}/{len(fake_storage.objects) + 1:04d}_seed.pdf"
        fields.setdefault("file_name", file_path.rsplit("/", 1)[-1])
        fields.setdefault("file_type", "application/pdf")
        fields.setdefault("file_size", 4)
        fields.setdefault("url", f"http://old.example/{file_path}")
        document = Document(user_id=user_id, file_path=file_path, **fields)
        async with session_maker() as session:
            session.add(document)
            await session.commit()
        if with_blob:
            fake_storage.objects[file_path] = (b"%PDF", fields["file_type"])
        return document

    return _seed
