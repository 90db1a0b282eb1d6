"""
文档模型 (Document)

一行代表一个上传到 BaaS 对象存储的文件（PDF / PNG）。
文件本身存放在存储桶的 file_path 下，这里只保存元信息。

存储路径按所有者分目录：
    <user_id>/<随机名>_<毫秒时间戳>.<扩展名>

注意：文件与行的一致性不是事务保证的：
- 上传：先传文件再写行，写行失败会留下孤儿文件
- 删除：先删文件再删行，删行失败会留下指向空文件的行
"""

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import UUID_PK, CreatedAtMixin, new_uuid


class Document(CreatedAtMixin, Base):
    """
    文档表

    字段说明：
    - user_id: 文件所属学生（老师上传的反馈文件也归属到学生名下）
    - file_name: 原始文件名（仅用于展示，不出现在存储路径里）
    - url: 公开地址或签名地址，每次列表刷新时会被替换
    - user_name: 学生上传时写入显示名；老师上传的行刻意留空
    - uploaded_by_teacher / teacher_email: 老师反馈文件标记
    """
    __tablename__ = "documents"

    id: Mapped[UUID_PK] = mapped_column(
        String(36),
        primary_key=True,
        default=new_uuid,
    )

    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    url: Mapped[str | None] = mapped_column(String(2000))

    user_email: Mapped[str | None] = mapped_column(String(255))
    user_name: Mapped[str | None] = mapped_column(String(255))

    uploaded_by_teacher: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    teacher_email: Mapped[str | None] = mapped_column(String(255))

    @property
    def display_name(self) -> str:
        """学生显示名：优先 user_name，其次邮箱前缀"""
        if self.user_name:
            return self.user_name
        if self.user_email:
            return self.user_email.split("@")[0]
        return "Unknown Student"

    def __repr__(self):
        return f"<Document {self.id} {self.file_path}>"
