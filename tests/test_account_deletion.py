"""
账号注销流程测试

测试 app/services/account.py：
- 老师账号在任何写操作前被拦截
- 部分文件删除失败不影响注销结果
- 打乱凭据失败 => 注销失败
- 有 / 无 service role key 两种更新方式
"""

import pytest
from sqlalchemy import func, select

from app.config import Settings
from app.exceptions import TeacherAccountProtectedError
from app.models import Document, UserRole
from app.services.account import (
    DELETED_EMAIL_DOMAIN,
    build_scrambled_credentials,
    delete_account,
    hash_email,
)

SETTINGS = Settings(teacher_email="teacher@example.com")


async def _count_documents(session_maker, user_id: str) -> int:
    async with session_maker() as session:
        stmt = select(func.count()).select_from(Document).where(Document.user_id == user_id)
        return (await session.execute(stmt)).scalar_one()


class TestScrambledCredentials:

    def test_scrambled_email_and_metadata(self):
        email, password, metadata = build_scrambled_credentials("Alice@Example.com")

        assert email.startswith("deleted-")
        assert email.endswith(f"@{DELETED_EMAIL_DOMAIN}")
        assert len(password) >= 24
        assert metadata["deleted"] is True
        assert metadata["delete_requested_at"]
        assert metadata["original_email_hash"] == hash_email("alice@example.com")
        assert "Alice@Example.com" not in str(metadata)

    def test_each_call_is_random(self):
        assert build_scrambled_credentials("a@b.c")[:2] != build_scrambled_credentials("a@b.c")[:2]


class TestDeleteAccount:

    @pytest.mark.asyncio
    async def test_teacher_is_protected(self, db_session, fake_storage, fake_auth, resolver, teacher_ctx, seed_document, session_maker):
        await seed_document(teacher_ctx.user_id)

        with pytest.raises(TeacherAccountProtectedError):
            await delete_account(db_session, fake_storage, fake_auth, teacher_ctx, resolver, SETTINGS)

        assert fake_auth.calls == []
        assert fake_storage.calls == []
        assert await _count_documents(session_maker, teacher_ctx.user_id) == 1

    @pytest.mark.asyncio
    async def test_teacher_by_role_is_protected(self, db_session, fake_storage, fake_auth, resolver, user_factory, context_factory):
        other = user_factory("t2", "assistant@example.com")
        db_session.add(UserRole(user_id=other.id, role="teacher"))
        await db_session.commit()

        with pytest.raises(TeacherAccountProtectedError):
            await delete_account(db_session, fake_storage, fake_auth, context_factory(other), resolver, SETTINGS)
        assert fake_auth.calls == []

    @pytest.mark.asyncio
    async def test_full_cleanup(self, db_session, fake_storage, fake_auth, resolver, student_ctx, seed_document, session_maker):
        for _ in range(3):
            await seed_document(student_ctx.user_id)
        await seed_document("other-student")
        fake_auth.login_as(student_ctx.user, student_ctx.access_token)

        report = await delete_account(db_session, fake_storage, fake_auth, student_ctx, resolver, SETTINGS)

        assert report.success
        assert (report.files_total, report.files_removed, report.files_failed) == (3, 3, 0)
        assert report.rows_deleted == 3
        assert report.warnings == []
        assert await _count_documents(session_maker, student_ctx.user_id) == 0
        assert await _count_documents(session_maker, "other-student") == 1
        assert all(not path.startswith(f"{student_ctx.user_id}/") for path in fake_storage.objects)

    @pytest.mark.asyncio
    async def test_one_file_failure_still_succeeds(self, db_session, fake_storage, fake_auth, resolver, student_ctx, seed_document, session_maker):
        paths = [f"{student_ctx.user_id}/{n}.pdf" for n in range(3)]
        for path in paths:
            await seed_document(student_ctx.user_id, path)
        fake_storage.fail_remove = {paths[1]}
        fake_auth.login_as(student_ctx.user, student_ctx.access_token)

        report = await delete_account(db_session, fake_storage, fake_auth, student_ctx, resolver, SETTINGS)

        assert report.success
        assert report.files_removed == 2
        assert report.files_failed == 1
        assert any(paths[1] in w for w in report.warnings)
        assert report.rows_deleted == 3
        assert await _count_documents(session_maker, student_ctx.user_id) == 0

    @pytest.mark.asyncio
    async def test_missing_blob_counts_as_removed(self, db_session, fake_storage, fake_auth, resolver, student_ctx, seed_document):
        await seed_document(student_ctx.user_id, with_blob=False)
        fake_auth.login_as(student_ctx.user, student_ctx.access_token)

        report = await delete_account(db_session, fake_storage, fake_auth, student_ctx, resolver, SETTINGS)

        assert report.success
        assert report.files_removed == 1
        assert report.files_failed == 0

    @pytest.mark.asyncio
    async def test_credential_update_failure_fails(self, db_session, fake_storage, fake_auth, resolver, student_ctx):
        fake_auth.login_as(student_ctx.user, student_ctx.access_token)
        fake_auth.fail_update = True

        report = await delete_account(db_session, fake_storage, fake_auth, student_ctx, resolver, SETTINGS)

        assert not report.success
        assert report.saga.aborted_at == "scramble_credentials"
        assert "update failed" in report.error
        assert not any(call[0] == "sign_out" for call in fake_auth.calls)

    @pytest.mark.asyncio
    async def test_user_token_update_without_admin_key(self, db_session, fake_storage, fake_auth, resolver, student_ctx):
        fake_auth.login_as(student_ctx.user, student_ctx.access_token)

        await delete_account(db_session, fake_storage, fake_auth, student_ctx, resolver, SETTINGS)

        name, token, email, password, data = fake_auth.calls[0]
        assert name == "update_user"
        assert token == student_ctx.access_token
        assert email.endswith(f"@{DELETED_EMAIL_DOMAIN}")
        assert password
        assert data["original_email_hash"] == hash_email(student_ctx.user.email)

    @pytest.mark.asyncio
    async def test_admin_update_with_service_key(self, db_session, fake_storage, fake_auth, resolver, student_ctx):
        fake_auth.admin = True

        report = await delete_account(db_session, fake_storage, fake_auth, student_ctx, resolver, SETTINGS)

        assert report.success
        name, user_id, email, _, metadata = fake_auth.calls[0]
        assert name == "admin_update_user"
        assert user_id == student_ctx.user_id
        assert metadata["deleted"] is True

    @pytest.mark.asyncio
    async def test_global_sign_out(self, db_session, fake_storage, fake_auth, resolver, student_ctx):
        fake_auth.login_as(student_ctx.user, student_ctx.access_token)

        await delete_account(db_session, fake_storage, fake_auth, student_ctx, resolver, SETTINGS)

        assert ("sign_out", student_ctx.access_token, "global") in fake_auth.calls

    @pytest.mark.asyncio
    async def test_sign_out_failure_is_only_a_warning(self, db_session, fake_storage, fake_auth, resolver, student_ctx):
        fake_auth.login_as(student_ctx.user, student_ctx.access_token)
        fake_auth.fail_sign_out = True

        report = await delete_account(db_session, fake_storage, fake_auth, student_ctx, resolver, SETTINGS)

        assert report.success
        assert any(w.startswith("global_sign_out") for w in report.warnings)
        assert report.to_dict()["saga"]["completed"] is True
