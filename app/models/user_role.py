"""
用户角色模型 (UserRole)

user_id -> role 的映射，role 只有 student / teacher 两种。
没有映射行的用户按 student 处理。
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import UUID_PK, CreatedAtMixin, new_uuid

ROLE_STUDENT = "student"
ROLE_TEACHER = "teacher"
VALID_ROLES = (ROLE_STUDENT, ROLE_TEACHER)


class UserRole(CreatedAtMixin, Base):
    """用户角色表（每个用户至多一行）"""
    __tablename__ = "user_roles"

    id: Mapped[UUID_PK] = mapped_column(
        String(36),
        primary_key=True,
        default=new_uuid,
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=ROLE_STUDENT)
