"""
账号注销服务

学生申请注销账号时执行的级联清理。整个流程没有事务，按步骤执行：

    enumerate_documents   列出名下文档          CONTINUE
    remove_blobs          逐个删除存储文件      CONTINUE（单个文件失败不影响其他文件）
    delete_rows           逐行删除文档记录      CONTINUE
    scramble_credentials  打乱邮箱 / 密码       ABORT（只有这一步成功才算注销成功）
    global_sign_out       所有设备登出          CONTINUE

老师账号在任何写操作之前就被拦下（TeacherAccountProtectedError）。

打乱后的 metadata 只保存原邮箱的 sha256（小写后计算），不保存明文邮箱：
既能核对“某个邮箱是否注销过”，又不会在认证记录里留下可直接识别的个人信息。
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.session import SessionContext
from app.config import Settings, get_settings
from app.exceptions import StorageError, TeacherAccountProtectedError
from app.infra.baas_auth import BaaSAuthClient
from app.infra.baas_storage import BaaSStorageClient
from app.models import Document
from app.services.roles import RoleResolver, is_designated_teacher
from app.services.saga import Saga, SagaResult, StepPolicy

logger = logging.getLogger(__name__)

DELETED_EMAIL_DOMAIN = "deleted.account"


def hash_email(email: str | None) -> str | None:
    if not email:
        return None
    return hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()


def build_scrambled_credentials(email: str | None) -> tuple[str, str, dict]:
    """生成随机邮箱、随机密码和注销标记 metadata"""
    scrambled_email = f"deleted-{secrets.token_hex(8)}@{DELETED_EMAIL_DOMAIN}"
    password = secrets.token_urlsafe(24)
    metadata = {
        "deleted": True,
        "delete_requested_at": datetime.now(timezone.utc).isoformat(),
        "original_email_hash": hash_email(email),
    }
    return scrambled_email, password, metadata


@dataclass
class AccountDeletionReport:
    """注销结果"""
    user_id: str
    saga: SagaResult
    files_total: int = 0
    files_removed: int = 0
    files_failed: int = 0
    rows_deleted: int = 0
    rows_failed: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.saga.completed

    @property
    def error(self) -> str | None:
        exc = self.saga.abort_error
        return str(exc) if exc else None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "success": self.success,
            "files_total": self.files_total,
            "files_removed": self.files_removed,
            "files_failed": self.files_failed,
            "rows_deleted": self.rows_deleted,
            "rows_failed": self.rows_failed,
            "warnings": self.warnings,
            "saga": self.saga.to_dict(),
        }


async def delete_account(
    session: AsyncSession,
    storage: BaaSStorageClient,
    auth: BaaSAuthClient,
    context: SessionContext,
    resolver: RoleResolver,
    settings: Settings | None = None,
) -> AccountDeletionReport:
    """
    注销当前登录的学生账号

    Raises:
        TeacherAccountProtectedError: 当前账号是老师账号
    """
    settings = settings or get_settings()
    user = context.user

    if await is_designated_teacher(user, session, resolver, settings.teacher_email):
        logger.warning(f"拒绝注销老师账号: {user.id}")
        raise TeacherAccountProtectedError("Teacher account cannot be deleted")

    counters = {
        "files_total": 0,
        "files_removed": 0,
        "files_failed": 0,
        "rows_deleted": 0,
        "rows_failed": 0,
    }
    warnings: list[str] = []

    async def enumerate_documents(state):
        rows = await session.execute(
            select(Document.id, Document.file_path).where(Document.user_id == user.id)
        )
        return [(doc_id, path) for doc_id, path in rows.all()]

    async def remove_blobs(state):
        documents = state.get("enumerate_documents")
        if documents is None:
            warnings.append("Document list unavailable; stored files were not removed")
            return 0
        counters["files_total"] = len(documents)
        for doc_id, path in documents:
            try:
                await storage.remove([path])
            except StorageError as exc:
                if exc.is_not_found:
                    counters["files_removed"] += 1
                    continue
                counters["files_failed"] += 1
                warnings.append(f"Failed to delete file {path}: {exc.message}")
                logger.warning(f"注销时删除文件失败，继续: user={user.id}, path={path}, error={exc}")
                continue
            counters["files_removed"] += 1
        return counters["files_removed"]

    async def delete_rows(state):
        documents = state.get("enumerate_documents")
        if documents is None:
            try:
                result = await session.execute(delete(Document).where(Document.user_id == user.id))
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            counters["rows_deleted"] = result.rowcount or 0
            return counters["rows_deleted"]

        for doc_id, path in documents:
            try:
                await session.execute(delete(Document).where(Document.id == doc_id))
                await session.commit()
            except Exception as exc:
                await session.rollback()
                counters["rows_failed"] += 1
                warnings.append(f"Failed to delete document record {doc_id}: {exc}")
                logger.warning(f"注销时删除文档行失败，继续: user={user.id}, doc={doc_id}, error={exc}")
                continue
            counters["rows_deleted"] += 1
        return counters["rows_deleted"]

    async def scramble_credentials(state):
        email, password, metadata = build_scrambled_credentials(user.email)
        if auth.has_admin_access:
            await auth.admin_update_user(
                user.id,
                email=email,
                password=password,
                user_metadata=metadata,
            )
        else:
            await auth.update_user(
                context.access_token,
                email=email,
                password=password,
                data=metadata,
            )
        return email

    async def global_sign_out(state):
        await auth.sign_out(context.access_token, scope="global")
        return True

    saga_result = await (
        Saga("delete_account", state={"user_id": user.id})
        .step("enumerate_documents", enumerate_documents, policy=StepPolicy.CONTINUE)
        .step("remove_blobs", remove_blobs, policy=StepPolicy.CONTINUE)
        .step("delete_rows", delete_rows, policy=StepPolicy.CONTINUE)
        .step("scramble_credentials", scramble_credentials, policy=StepPolicy.ABORT)
        .step("global_sign_out", global_sign_out, policy=StepPolicy.CONTINUE)
        .run()
    )

    for outcome in saga_result.failed_steps():
        if outcome.name != saga_result.aborted_at:
            warnings.append(f"{outcome.name}: {outcome.error}")

    report = AccountDeletionReport(user_id=user.id, saga=saga_result, warnings=warnings, **counters)
    if report.success:
        logger.info(
            f"账号已注销: user={user.id}, files={report.files_removed}/{report.files_total}, "
            f"rows={report.rows_deleted}, warnings={len(warnings)}"
        )
    else:
        logger.error(f"账号注销失败: user={user.id}, step={saga_result.aborted_at}, error={report.error}")
    return report
