"""
用户资料模型 (Profile)

冗余的展示信息（姓名、头像），论坛和文档视图按 id 查询后渲染作者名 / 首字母。
id 与认证服务中的用户 id 相同。
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import UUID_PK, CreatedAtMixin


class Profile(CreatedAtMixin, Base):
    """用户资料表"""
    __tablename__ = "profiles"

    id: Mapped[UUID_PK] = mapped_column(String(36), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(255))
    full_name: Mapped[str | None] = mapped_column(String(255))
    avatar_url: Mapped[str | None] = mapped_column(String(1000))

    @property
    def initials(self) -> str:
        """姓名首字母（最多两位），没有姓名时用邮箱首字母"""
        if self.full_name:
            letters = [part[0] for part in self.full_name.split() if part]
            return "".join(letters)[:2].upper()
        if self.email:
            return self.email[0].upper()
        return "U"
