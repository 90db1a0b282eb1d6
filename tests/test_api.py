"""
HTTP 接口测试

通过 api_client（httpx.ASGITransport）调用完整应用，
认证 / 存储 / 数据库都替换为 conftest 中的测试对象。
"""

import pytest
from sqlalchemy import select

from app.models import Document, Profile, UserRole


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def student_token(fake_auth, student):
    return fake_auth.login_as(student)


@pytest.fixture
def teacher_token(fake_auth, teacher, role_cache):
    role_cache.remember_teacher(teacher.id)
    return fake_auth.login_as(teacher)


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthz(self, api_client):
        response = await api_client.get("/healthz")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    @pytest.mark.asyncio
    async def test_readyz_checks_database(self, api_client):
        response = await api_client.get("/readyz")
        assert response.status_code == 200
        assert response.json()["database"] == "ok"

    @pytest.mark.asyncio
    async def test_request_id_header(self, api_client):
        response = await api_client.get("/healthz", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"


class TestDeleteAccountEndpoint:

    @pytest.mark.asyncio
    async def test_requires_session(self, api_client):
        response = await api_client.post("/api/delete-account")
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    @pytest.mark.asyncio
    async def test_teacher_rejected(self, api_client, fake_auth, teacher_token):
        response = await api_client.post("/api/delete-account", headers=bearer(teacher_token))

        assert response.status_code == 403
        assert response.json()["code"] == "TEACHER_ACCOUNT_PROTECTED"
        assert not any(call[0] in ("update_user", "admin_update_user") for call in fake_auth.calls)

    @pytest.mark.asyncio
    async def test_student_deleted(self, api_client, fake_auth, fake_storage, seed_document, session_maker, student, student_token):
        await seed_document(student.id)
        await seed_document(student.id)

        response = await api_client.post("/api/delete-account", headers=bearer(student_token))

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert fake_storage.objects == {}
        async with session_maker() as session:
            rows = (await session.execute(select(Document).where(Document.user_id == student.id))).all()
        assert rows == []
        assert ("sign_out", student_token, "global") in fake_auth.calls

    @pytest.mark.asyncio
    async def test_scramble_failure_is_500(self, api_client, fake_auth, student_token):
        fake_auth.fail_update = True
        response = await api_client.post("/api/delete-account", headers=bearer(student_token))

        assert response.status_code == 500
        assert response.json()["error"].startswith("Failed to delete account")


class TestMaintenanceEndpoints:

    @pytest.mark.asyncio
    async def test_refresh_urls_empty(self, api_client):
        response = await api_client.get("/api/refresh-urls")
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "No documents found to update"}

    @pytest.mark.asyncio
    async def test_refresh_urls_counts(self, api_client, fake_storage, seed_document):
        await seed_document("s1", "s1/a.pdf")
        await seed_document("s1", "s1/b.pdf", file_name="b.pdf")
        fake_storage.fail_sign = {"s1/b.pdf"}

        response = await api_client.get("/api/refresh-urls")

        body = response.json()
        assert response.status_code == 200
        assert body["message"] == "Updated 1 of 2 document URLs"
        assert body["results"]["failed"] == 1
        assert body["results"]["errors"][0].startswith("Error for b.pdf")

    @pytest.mark.asyncio
    async def test_file_access_requires_path(self, api_client):
        response = await api_client.post("/api/test-file-access", json={})
        assert response.status_code == 400
        assert response.json() == {"error": "File path is required"}

    @pytest.mark.asyncio
    async def test_file_access_forbidden(self, api_client, fake_storage):
        fake_storage.objects["s2/secret.pdf"] = (b"%PDF", "application/pdf")
        fake_storage.forbidden = {"s2/secret.pdf"}

        response = await api_client.post("/api/test-file-access", json={"filePath": "s2/secret.pdf"})

        assert response.status_code == 403
        assert response.json()["details"]["statusCode"] == 403

    @pytest.mark.asyncio
    async def test_file_access_missing_file(self, api_client):
        response = await api_client.post("/api/test-file-access", json={"filePath": "nope.pdf"})
        assert response.status_code == 500
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_file_access_sign_failure(self, api_client, fake_storage):
        fake_storage.objects["s1/a.pdf"] = (b"%PDF", "application/pdf")
        fake_storage.fail_sign = {"s1/a.pdf"}

        response = await api_client.post("/api/test-file-access", json={"filePath": "s1/a.pdf"})

        assert response.status_code == 500
        assert response.json()["downloadSuccess"] is True

    @pytest.mark.asyncio
    async def test_file_access_success(self, api_client, fake_storage, student_token):
        fake_storage.objects["student-1/a.pdf"] = (b"%PDF-1.4", "application/pdf")

        response = await api_client.post(
            "/api/test-file-access",
            json={"filePath": "student-1/a.pdf"},
            headers=bearer(student_token),
        )

        body = response.json()
        assert response.status_code == 200
        assert body["fileSize"] == 8
        assert body["fileType"] == "application/pdf"
        assert "expires=3600" in body["signedUrl"]
        assert body["publicUrl"].endswith("/object/public/documents/student-1/a.pdf")


class TestDocumentEndpoints:

    @pytest.mark.asyncio
    async def test_list_requires_session(self, api_client):
        response = await api_client.get("/api/documents")
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_upload_list_delete(self, api_client, fake_storage, student_token):
        upload = await api_client.post(
            "/api/documents",
            files={"file": ("notes.pdf", b"%PDF-1.4", "application/pdf")},
            headers=bearer(student_token),
        )
        assert upload.status_code == 201
        document = upload.json()
        assert document["file_path"] in fake_storage.objects

        listing = await api_client.get("/api/documents", headers=bearer(student_token))
        assert listing.json()["total"] == 1
        assert listing.json()["items"][0]["url_refreshed"] is True

        deleted = await api_client.delete(f"/api/documents/{document['id']}", headers=bearer(student_token))
        assert deleted.status_code == 200
        assert deleted.json() == {"success": True, "document_id": document["id"]}
        assert fake_storage.objects == {}

    @pytest.mark.asyncio
    async def test_upload_rejects_wrong_type(self, api_client, fake_storage, student_token):
        response = await api_client.post(
            "/api/documents",
            files={"file": ("photo.jpg", b"jpeg", "image/jpeg")},
            headers=bearer(student_token),
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert fake_storage.calls == []

    @pytest.mark.asyncio
    async def test_delete_other_students_document(self, api_client, seed_document, student_token):
        document = await seed_document("other-student")
        response = await api_client.delete(f"/api/documents/{document.id}", headers=bearer(student_token))
        assert response.status_code == 404
        assert response.json()["code"] == "DOCUMENT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_delete_blob_failure_is_500(self, api_client, fake_storage, seed_document, student, student_token):
        document = await seed_document(student.id, f"{student.id}/a.pdf")
        fake_storage.fail_remove = {f"{student.id}/a.pdf"}

        response = await api_client.delete(f"/api/documents/{document.id}", headers=bearer(student_token))

        assert response.status_code == 500
        assert response.json()["code"] == "DOCUMENT_OPERATION_FAILED"


class TestTeacherEndpoints:

    @pytest.mark.asyncio
    async def test_student_forbidden(self, api_client, student_token):
        response = await api_client.get("/api/teacher/students", headers=bearer(student_token))
        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_feedback_upload_and_origin_filter(self, api_client, seed_document, teacher, teacher_token):
        await seed_document("s1", user_name="Alice", user_email="alice@example.com")

        upload = await api_client.post(
            "/api/teacher/students/s1/documents",
            files={"file": ("feedback.png", b"\x89PNG", "image/png")},
            headers=bearer(teacher_token),
        )
        assert upload.status_code == 201
        assert upload.json()["uploaded_by_teacher"] is True
        assert upload.json()["teacher_email"] == teacher.email

        students = await api_client.get("/api/teacher/students", headers=bearer(teacher_token))
        assert [s["id"] for s in students.json()] == ["s1"]

        feedback = await api_client.get("/api/teacher/documents?origin=teacher", headers=bearer(teacher_token))
        body = feedback.json()
        assert body["origin"] == "teacher"
        assert len(body["items"]) == 1
        assert body["students"][0]["user_id"] == "s1"


class TestForumEndpoints:

    @pytest.mark.asyncio
    async def test_topic_and_reply_flow(self, api_client, student_token):
        created = await api_client.post(
            "/api/forum/topics",
            json={"title": "Quadratics", "content": "Stuck on 3b", "category": "Mathematics"},
            headers=bearer(student_token),
        )
        assert created.status_code == 201
        topic_id = created.json()["id"]

        reply = await api_client.post(
            f"/api/forum/topics/{topic_id}/replies",
            json={"content": "Try factoring"},
            headers=bearer(student_token),
        )
        assert reply.status_code == 201
        assert reply.json()["reply_count"] == 1
        assert reply.json()["counter_updated"] is True

        listing = await api_client.get("/api/forum/topics", params={"category": "Mathematics"})
        assert listing.json()["items"][0]["reply_count"] == 1

        detail = await api_client.get(f"/api/forum/topics/{topic_id}")
        assert [r["content"] for r in detail.json()["replies"]] == ["Try factoring"]

    @pytest.mark.asyncio
    async def test_blank_title_rejected(self, api_client, student_token):
        response = await api_client.post(
            "/api/forum/topics",
            json={"title": "  ", "content": "x", "category": "General"},
            headers=bearer(student_token),
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_category_is_validation_error(self, api_client):
        response = await api_client.get("/api/forum/topics", params={"category": "Physics"})
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_missing_topic(self, api_client):
        response = await api_client.get("/api/forum/topics/missing")
        assert response.status_code == 404


class TestAuthEndpoints:

    @pytest.mark.asyncio
    async def test_signup_writes_role_and_profile(self, api_client, fake_auth, session_maker):
        response = await api_client.post(
            "/api/auth/signup",
            json={"email": "new@example.com", "password": "secret1", "full_name": "New Student"},
        )
        assert response.status_code == 201
        assert response.json()["role"] == "student"
        assert fake_auth.calls[0] == ("sign_up", "new@example.com", "http://localhost:3000/login")

        async with session_maker() as session:
            role = (await session.execute(select(UserRole).where(UserRole.user_id == "new-new"))).scalar_one()
            profile = await session.get(Profile, "new-new")
        assert role.role == "student"
        assert profile.full_name == "New Student"

    @pytest.mark.asyncio
    async def test_login_unconfirmed_email(self, api_client, fake_auth, user_factory):
        user = user_factory("u9", "pending@example.com")
        user.email_confirmed_at = None
        fake_auth.login_as(user)

        response = await api_client.post(
            "/api/auth/login",
            json={"email": "pending@example.com", "password": "secret1"},
        )

        assert response.status_code == 403
        assert response.json()["code"] == "EMAIL_NOT_CONFIRMED"

    @pytest.mark.asyncio
    async def test_login_sets_cookie(self, api_client, student, student_token):
        response = await api_client.post(
            "/api/auth/login",
            json={"email": student.email, "password": "secret1"},
        )
        assert response.status_code == 200
        assert response.json()["role"] == "student"
        assert response.cookies.get("sb-access-token") == student_token

    @pytest.mark.asyncio
    async def test_wrong_password(self, api_client):
        response = await api_client.post(
            "/api/auth/login",
            json={"email": "nobody@example.com", "password": "secret1"},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "AUTH_ERROR"

    @pytest.mark.asyncio
    async def test_session(self, api_client, student_token):
        anonymous = await api_client.get("/api/auth/session")
        assert anonymous.json() == {"user": None, "role": None}

        response = await api_client.get("/api/auth/session", headers=bearer(student_token))
        assert response.json()["user"]["full_name"] == "Alice Zhang"
        assert response.json()["role"] == "student"

    @pytest.mark.asyncio
    async def test_student_cannot_take_teacher_role(self, api_client, seed_document, session_maker, student, student_token, role_cache):
        await seed_document("student-2")

        response = await api_client.post("/api/admin/teacher-role", headers=bearer(student_token))

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"
        assert not role_cache.is_teacher(student.id)
        async with session_maker() as session:
            rows = (await session.execute(select(UserRole))).scalars().all()
        assert rows == []

        listing = await api_client.get("/api/documents", headers=bearer(student_token))
        assert listing.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_designated_teacher_grants_own_role(self, api_client, fake_auth, session_maker, teacher, role_cache):
        token = fake_auth.login_as(teacher)

        response = await api_client.post("/api/admin/teacher-role", headers=bearer(token))

        assert response.status_code == 200
        assert role_cache.is_teacher(teacher.id)
        async with session_maker() as session:
            row = (await session.execute(select(UserRole).where(UserRole.user_id == teacher.id))).scalar_one()
        assert row.role == "teacher"


class TestPages:

    @pytest.mark.asyncio
    async def test_dashboard_redirects_anonymous(self, api_client):
        response = await api_client.get("/dashboard")
        assert response.status_code == 307
        assert response.headers["location"] == "/login?redirectedFrom=/dashboard"

    @pytest.mark.asyncio
    async def test_dashboard_splits_feedback(self, api_client, seed_document, student, student_token):
        await seed_document(student.id)
        await seed_document(student.id, uploaded_by_teacher=True, teacher_email="teacher@example.com")

        response = await api_client.get("/dashboard", headers=bearer(student_token))

        body = response.json()
        assert len(body["documents"]) == 1
        assert len(body["feedback"]) == 1

    @pytest.mark.asyncio
    async def test_teacher_dashboard_points_to_portal(self, api_client, teacher_token):
        response = await api_client.get("/dashboard", headers=bearer(teacher_token))
        assert response.json()["redirect"] == "/teacher-portal"

    @pytest.mark.asyncio
    async def test_debug_session_is_open(self, api_client):
        response = await api_client.get("/debug/session")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_debug_bucket_is_always_private(self, api_client, fake_storage):
        response = await api_client.post("/debug/storage/bucket", json={"public": True})

        assert response.status_code == 201
        assert fake_storage.buckets["documents"]["public"] is False
