"""
文档服务 (Document Service)

负责学生 / 老师的文档交换：
1. 上传：校验 -> 传文件到对象存储 -> 取地址 -> 写 documents 行
2. 列表：按创建时间倒序，并发为每一行换发签名地址
3. 删除：先删文件，再删行
4. 维护：批量重签所有行的地址并写回数据库
5. 老师视图：从文档行推导学生列表，按学生分组

文件和行之间没有事务，每个写流程都是一个 Saga：
- 上传：文件已上传但写行失败 => 孤儿文件，只记录日志
- 删除：文件删除失败 => 行保留；文件已不存在（404）=> 视为已删除，用于清理残留行
"""

import asyncio
import logging
import mimetypes
import secrets
import time
from dataclasses import dataclass

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.session import SessionContext
from app.config import Settings, get_settings
from app.exceptions import (
    DocumentNotFoundError,
    DocumentOperationError,
    DocumentValidationError,
    StorageError,
)
from app.infra.baas_auth import AuthUser
from app.infra.baas_storage import BaaSStorageClient
from app.models import Document, Profile
from app.schemas.document import (
    DocumentOrigin,
    DocumentResponse,
    RefreshUrlsResult,
    StudentDocuments,
    StudentSummary,
)
from app.services.saga import Saga, SagaResult, StepPolicy

logger = logging.getLogger(__name__)

UNKNOWN_USER_NAME = "Unknown User"


@dataclass
class UploadedFile:
    """待上传的文件（已读入内存）"""
    file_name: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def validate_upload(content_type: str | None, size: int, settings: Settings | None = None) -> None:
    """
    上传前校验，不发起任何网络请求

    PNG 按前缀匹配（image/png; charset=... 之类的写法也接受）。

    Raises:
        DocumentValidationError: 类型不允许、文件为空或超过大小上限
    """
    settings = settings or get_settings()
    content_type = (content_type or "").strip().lower()

    allowed = False
    for mime in settings.allowed_mime_types:
        if mime.startswith("image/"):
            allowed = content_type.startswith(mime)
        else:
            allowed = content_type == mime
        if allowed:
            break
    if not allowed:
        raise DocumentValidationError(
            f"Unsupported file type '{content_type or 'unknown'}'. Only PDF and PNG files are allowed."
        )

    if size <= 0:
        raise DocumentValidationError("File is empty")
    if size > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes / (1024 * 1024)
        raise DocumentValidationError(f"File size must be less than {limit_mb:g}MB")


def build_storage_path(owner_id: str, file_name: str) -> str:
    """
    生成存储路径：<owner_id>/<随机名>_<毫秒时间戳>.<扩展名>

    原始文件名不进入路径，只保留扩展名。
    """
    ext = ""
    if "." in file_name:
        ext = file_name.rsplit(".", 1)[-1].lower()
    if not ext:
        guessed = mimetypes.guess_extension(mimetypes.guess_type(file_name)[0] or "")
        ext = (guessed or ".bin").lstrip(".")
    token = secrets.token_hex(8)
    return f"{owner_id}/{token}_{int(time.time() * 1000)}.{ext}"


async def resolve_document_url(
    storage: BaaSStorageClient,
    path: str,
    settings: Settings | None = None,
) -> str:
    """按 document_url_mode 返回公开地址或 7 天签名地址"""
    settings = settings or get_settings()
    if settings.document_url_mode == "signed":
        return await storage.create_signed_url(path, settings.signed_url_expiry_seconds)
    return storage.get_public_url(path)


async def _run_upload(
    session: AsyncSession,
    storage: BaaSStorageClient,
    *,
    owner_id: str,
    upload: UploadedFile,
    row_fields: dict,
    settings: Settings,
) -> Document:
    path = build_storage_path(owner_id, upload.file_name)

    async def upload_blob(state):
        await storage.upload(
            path,
            upload.content,
            content_type=upload.content_type,
            cache_control=settings.upload_cache_control,
        )
        return path

    async def resolve_url(state):
        return await resolve_document_url(storage, path, settings)

    async def insert_row(state):
        document = Document(
            user_id=owner_id,
            file_name=upload.file_name,
            file_type=upload.content_type,
            file_size=upload.size,
            file_path=path,
            url=state["resolve_url"],
            **row_fields,
        )
        session.add(document)
        try:
            await session.commit()
        except Exception:
            await session.rollback()
            logger.warning(f"文档行写入失败，存储中留下孤儿文件: {path}")
            raise
        await session.refresh(document)
        return document

    result = await (
        Saga("upload_document")
        .step("upload_blob", upload_blob, policy=StepPolicy.ABORT)
        .step("resolve_url", resolve_url, policy=StepPolicy.ABORT)
        .step("insert_row", insert_row, policy=StepPolicy.ABORT)
        .run()
    )
    if not result.completed:
        raise DocumentOperationError(
            f"Upload failed at {result.aborted_at}: {result.abort_error}",
            step=result.aborted_at,
        )

    document = result.state["insert_row"]
    logger.info(f"文档上传完成: id={document.id}, path={path}, size={upload.size}")
    return document


async def upload_document(
    session: AsyncSession,
    storage: BaaSStorageClient,
    owner: AuthUser,
    upload: UploadedFile,
    settings: Settings | None = None,
) -> Document:
    """学生上传自己的文档"""
    settings = settings or get_settings()
    validate_upload(upload.content_type, upload.size, settings)
    return await _run_upload(
        session,
        storage,
        owner_id=owner.id,
        upload=upload,
        row_fields={
            "user_email": owner.email,
            "user_name": owner.full_name or UNKNOWN_USER_NAME,
            "uploaded_by_teacher": False,
        },
        settings=settings,
    )


async def lookup_student_email(session: AsyncSession, student_id: str) -> str | None:
    """从学生已有的文档或 profiles 中找邮箱"""
    stmt = (
        select(Document.user_email)
        .where(
            Document.user_id == student_id,
            Document.user_email.is_not(None),
            Document.uploaded_by_teacher.is_(False),
        )
        .order_by(Document.created_at.desc())
        .limit(1)
    )
    email = (await session.execute(stmt)).scalar_one_or_none()
    if email:
        return email
    profile = await session.get(Profile, student_id)
    return profile.email if profile else None


async def upload_document_for_student(
    session: AsyncSession,
    storage: BaaSStorageClient,
    teacher: AuthUser,
    student_id: str,
    upload: UploadedFile,
    settings: Settings | None = None,
) -> Document:
    """
    老师给学生上传反馈文件

    文件放在学生的目录下，行归属到学生；user_name 不写。
    """
    settings = settings or get_settings()
    validate_upload(upload.content_type, upload.size, settings)
    student_email = await lookup_student_email(session, student_id)
    return await _run_upload(
        session,
        storage,
        owner_id=student_id,
        upload=upload,
        row_fields={
            "user_email": student_email,
            "uploaded_by_teacher": True,
            "teacher_email": teacher.email,
        },
        settings=settings,
    )


async def refresh_signed_urls(
    storage: BaaSStorageClient,
    documents: list[Document],
    expires_in: int,
) -> list[DocumentResponse]:
    """
    为每一行并发换发签名地址

    某一行失败时保留原地址（url_refreshed=False），不影响其他行，返回顺序与输入一致。
    """
    items = [DocumentResponse.model_validate(doc) for doc in documents]
    if not items:
        return items

    results = await asyncio.gather(
        *(storage.create_signed_url(item.file_path, expires_in) for item in items),
        return_exceptions=True,
    )

    failed = 0
    for item, signed in zip(items, results):
        if isinstance(signed, BaseException):
            failed += 1
            logger.warning(f"签名地址刷新失败，保留旧地址: doc={item.id}, error={signed}")
            continue
        item.url = signed
        item.url_refreshed = True

    if failed:
        logger.info(f"签名地址刷新: 成功 {len(items) - failed}/{len(items)}")
    return items


async def list_documents(
    session: AsyncSession,
    storage: BaaSStorageClient,
    viewer: SessionContext,
    settings: Settings | None = None,
) -> list[DocumentResponse]:
    """学生看自己的文档，老师看全部；按创建时间倒序"""
    settings = settings or get_settings()
    stmt = select(Document).order_by(Document.created_at.desc())
    if not viewer.is_teacher:
        stmt = stmt.where(Document.user_id == viewer.user_id)
    documents = list((await session.execute(stmt)).scalars().all())
    return await refresh_signed_urls(storage, documents, settings.signed_url_expiry_seconds)


async def refresh_all_document_urls(
    session: AsyncSession,
    storage: BaaSStorageClient,
    settings: Settings | None = None,
) -> RefreshUrlsResult:
    """
    维护任务：为所有文档重签地址并写回数据库

    每行单独提交，单行失败只计入 errors。
    """
    settings = settings or get_settings()
    rows = (
        await session.execute(select(Document.id, Document.file_name, Document.file_path))
    ).all()
    result = RefreshUrlsResult(total=len(rows))

    for doc_id, file_name, file_path in rows:
        try:
            signed = await storage.create_signed_url(file_path, settings.signed_url_expiry_seconds)
            await session.execute(
                update(Document).where(Document.id == doc_id).values(url=signed)
            )
            await session.commit()
        except Exception as exc:
            await session.rollback()
            result.failed += 1
            result.errors.append(f"Error for {file_name}: {exc}")
            logger.warning(f"重签地址失败: doc={doc_id}, error={exc}")
            continue
        result.success += 1

    logger.info(f"批量重签完成: total={result.total}, success={result.success}, failed={result.failed}")
    return result


async def get_document_for_viewer(
    session: AsyncSession,
    viewer: SessionContext,
    document_id: str,
) -> Document:
    """读取文档并校验归属（学生只能访问自己的，老师可以访问全部）"""
    document = await session.get(Document, document_id)
    if document is None or (not viewer.is_teacher and document.user_id != viewer.user_id):
        raise DocumentNotFoundError(f"Document {document_id} not found")
    return document


async def delete_document(
    session: AsyncSession,
    storage: BaaSStorageClient,
    viewer: SessionContext,
    document_id: str,
) -> SagaResult:
    """
    删除文档：先删文件，再删行

    文件删除失败则终止并保留行；存储返回不存在时按已删除处理，
    这样“有行没文件”的残留数据也能被清理。

    Raises:
        DocumentNotFoundError: 文档不存在或不属于当前学生
        DocumentOperationError: 某一步失败
    """
    document = await get_document_for_viewer(session, viewer, document_id)
    file_path = document.file_path

    async def remove_blob(state):
        try:
            await storage.remove([file_path])
        except StorageError as exc:
            if not exc.is_not_found:
                raise
            logger.info(f"文件已不存在，继续删除行: {file_path}")
            return False
        return True

    async def delete_row(state):
        try:
            await session.execute(delete(Document).where(Document.id == document_id))
            await session.commit()
        except Exception:
            await session.rollback()
            logger.warning(f"文件已删除但行删除失败，留下残留行: doc={document_id}")
            raise
        return document_id

    result = await (
        Saga("delete_document")
        .step("remove_blob", remove_blob, policy=StepPolicy.ABORT)
        .step("delete_row", delete_row, policy=StepPolicy.ABORT)
        .run()
    )
    if not result.completed:
        raise DocumentOperationError(
            f"Delete failed at {result.aborted_at}: {result.abort_error}",
            step=result.aborted_at,
        )
    logger.info(f"文档已删除: {document_id}")
    return result


def _display_name(user_name: str | None, email: str | None) -> str:
    if user_name:
        return user_name
    if email:
        return email.split("@")[0]
    return "Unknown Student"


async def list_students(session: AsyncSession) -> list[StudentSummary]:
    """从学生上传的文档中推导学生列表（去重，按最近上传排序）"""
    stmt = (
        select(Document.user_id, Document.user_email, Document.user_name)
        .where(Document.uploaded_by_teacher.is_(False))
        .order_by(Document.created_at.desc())
    )
    students: dict[str, StudentSummary] = {}
    for user_id, email, user_name in (await session.execute(stmt)).all():
        if user_id in students:
            continue
        students[user_id] = StudentSummary(
            id=user_id,
            email=email,
            display_name=_display_name(user_name, email),
        )
    return list(students.values())


def filter_by_origin(documents: list[DocumentResponse], origin: DocumentOrigin) -> list[DocumentResponse]:
    if origin == "student":
        return [d for d in documents if not d.uploaded_by_teacher]
    if origin == "teacher":
        return [d for d in documents if d.uploaded_by_teacher]
    return list(documents)


def group_documents_by_student(documents: list[DocumentResponse]) -> list[StudentDocuments]:
    """按学生分组，组内保持输入顺序；老师上传的行不提供显示名，取同组学生行的"""
    groups: dict[str, StudentDocuments] = {}
    for doc in documents:
        group = groups.get(doc.user_id)
        if group is None:
            group = StudentDocuments(
                user_id=doc.user_id,
                email=doc.user_email,
                display_name=_display_name(doc.user_name, doc.user_email),
                documents=[],
            )
            groups[doc.user_id] = group
        elif doc.user_name and not doc.uploaded_by_teacher:
            group.display_name = doc.user_name
        if not group.email and doc.user_email:
            group.email = doc.user_email
        group.documents.append(doc)
    return list(groups.values())
