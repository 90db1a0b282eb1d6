"""
角色解析服务

判断当前登录用户是 student 还是 teacher。历史上用过三种来源：

- table:    查询 user_roles 表（没有记录 => student）
- email:    与配置中的唯一老师邮箱比较（纯函数，不依赖数据库）
- metadata: 读取用户 metadata 里的 role 字段

三种来源实现同一个 RoleStrategy 接口，由配置 role_strategy 选择一个生效。

规则：
- 任何查询异常都按 student 处理（最小权限），只记录日志，不向调用方抛出
- 查到 teacher 时写入 RoleCache，进程存活期间不再查询
- 缓存从不因为降级而失效（老师降级后直到重启前仍被视为老师）；
  只有 set_user_role(..., "student") 会显式移除缓存项

使用示例：
    resolver = build_role_resolver(settings)
    role = await resolver.resolve(user, db)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.infra.baas_auth import AuthUser
from app.models import ROLE_STUDENT, ROLE_TEACHER, VALID_ROLES, UserRole

logger = logging.getLogger(__name__)


class RoleCache(Protocol):
    """老师身份缓存（键为 user_id）"""

    def is_teacher(self, user_id: str) -> bool: ...

    def remember_teacher(self, user_id: str) -> None: ...

    def forget(self, user_id: str) -> None: ...


class MemoryRoleCache:
    """进程内缓存，生命周期与进程相同"""

    def __init__(self) -> None:
        self._teachers: set[str] = set()

    def is_teacher(self, user_id: str) -> bool:
        return user_id in self._teachers

    def remember_teacher(self, user_id: str) -> None:
        self._teachers.add(user_id)

    def forget(self, user_id: str) -> None:
        self._teachers.discard(user_id)

    def __len__(self) -> int:
        return len(self._teachers)


class RoleStrategy(ABC):
    """角色来源基类"""

    name: str = ""

    @abstractmethod
    async def resolve(self, user: AuthUser, session: AsyncSession | None) -> str:
        """返回 student 或 teacher"""


# ==================== 策略注册表 ====================

_STRATEGIES: dict[str, Callable[[Settings, RoleCache], RoleStrategy]] = {}


def register_role_strategy(name: str):
    """
    角色策略注册装饰器

    被装饰的类需要提供 from_settings(settings, cache) 类方法。
    """
    def wrapper(cls):
        cls.name = name
        _STRATEGIES[name] = cls.from_settings
        return cls

    return wrapper


def list_role_strategies() -> list[str]:
    return list(_STRATEGIES.keys())


@register_role_strategy("table")
class TableRoleStrategy(RoleStrategy):
    """查询 user_roles 表，teacher 结果写入缓存"""

    def __init__(self, cache: RoleCache) -> None:
        self.cache = cache

    @classmethod
    def from_settings(cls, settings: Settings, cache: RoleCache) -> "TableRoleStrategy":
        return cls(cache)

    async def resolve(self, user: AuthUser, session: AsyncSession | None) -> str:
        if self.cache.is_teacher(user.id):
            return ROLE_TEACHER
        if session is None:
            raise RuntimeError("table role strategy requires a database session")

        result = await session.execute(
            select(UserRole.role).where(UserRole.user_id == user.id)
        )
        role = result.scalars().first()
        if role is None:
            logger.info(f"用户 {user.id} 没有角色记录，按 student 处理")
            return ROLE_STUDENT

        if role == ROLE_TEACHER:
            self.cache.remember_teacher(user.id)
        return role if role in VALID_ROLES else ROLE_STUDENT


@register_role_strategy("email")
class EmailRoleStrategy(RoleStrategy):
    """与唯一老师邮箱比较"""

    def __init__(self, teacher_email: str) -> None:
        self.teacher_email = teacher_email.strip().lower()

    @classmethod
    def from_settings(cls, settings: Settings, cache: RoleCache) -> "EmailRoleStrategy":
        return cls(settings.teacher_email)

    async def resolve(self, user: AuthUser, session: AsyncSession | None) -> str:
        if user.email and user.email.strip().lower() == self.teacher_email:
            return ROLE_TEACHER
        return ROLE_STUDENT


@register_role_strategy("metadata")
class MetadataRoleStrategy(RoleStrategy):
    """读取 user_metadata.role"""

    @classmethod
    def from_settings(cls, settings: Settings, cache: RoleCache) -> "MetadataRoleStrategy":
        return cls()

    async def resolve(self, user: AuthUser, session: AsyncSession | None) -> str:
        if user.user_metadata.get("role") == ROLE_TEACHER:
            return ROLE_TEACHER
        return ROLE_STUDENT


class RoleResolver:
    """对外的角色解析入口，吞掉策略异常并降级为 student"""

    def __init__(self, strategy: RoleStrategy, cache: RoleCache | None = None) -> None:
        self.strategy = strategy
        self.cache = cache or MemoryRoleCache()

    async def resolve(self, user: AuthUser, session: AsyncSession | None = None) -> str:
        try:
            return await self.strategy.resolve(user, session)
        except Exception as exc:
            logger.warning(
                f"角色查询失败，按 student 处理: {exc}",
                extra={"role_user": user.id, "strategy": self.strategy.name},
            )
            if session is not None:
                try:
                    await session.rollback()
                except Exception as rollback_exc:
                    logger.debug(f"角色查询失败后回滚出错: {rollback_exc}")
            return ROLE_STUDENT

    async def is_teacher(self, user: AuthUser, session: AsyncSession | None = None) -> bool:
        if self.cache.is_teacher(user.id):
            return True
        return await self.resolve(user, session) == ROLE_TEACHER


def build_role_resolver(settings: Settings, cache: RoleCache | None = None) -> RoleResolver:
    """按配置 role_strategy 构建角色解析器"""
    cache = cache or MemoryRoleCache()
    factory = _STRATEGIES.get(settings.role_strategy)
    if factory is None:
        raise ValueError(f"Unknown role strategy: {settings.role_strategy}")
    logger.info(f"角色解析策略: {settings.role_strategy}")
    return RoleResolver(factory(settings, cache), cache)


async def set_user_role(
    session: AsyncSession,
    user_id: str,
    role: str,
    cache: RoleCache | None = None,
) -> UserRole:
    """
    写入用户角色（存在则更新，不存在则插入）

    注册时调用（默认 student），以及开通老师账号时调用。
    """
    if role not in VALID_ROLES:
        raise ValueError(f"Invalid role: {role}")

    result = await session.execute(select(UserRole).where(UserRole.user_id == user_id))
    existing = result.scalar_one_or_none()
    if existing is not None:
        existing.role = role
        row = existing
    else:
        row = UserRole(user_id=user_id, role=role)
        session.add(row)

    await session.commit()

    # 提交成功后再更新缓存
    if cache is not None:
        if role == ROLE_TEACHER:
            cache.remember_teacher(user_id)
        else:
            cache.forget(user_id)
    logger.info(f"用户 {user_id} 角色设置为 {role}")
    return row


async def is_designated_teacher(
    user: AuthUser,
    session: AsyncSession | None,
    resolver: RoleResolver,
    teacher_email: str,
) -> bool:
    """
    是否为唯一指定的老师账号（账号注销前的保护检查）

    邮箱匹配或解析结果为 teacher 任一成立即视为老师。
    """
    if user.email and user.email.strip().lower() == teacher_email.strip().lower():
        return True
    return await resolver.is_teacher(user, session)
