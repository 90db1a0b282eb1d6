"""
SQLAlchemy ORM 基类定义

所有数据库模型都继承自这个 Base 类，Base.metadata 汇总了
BaaS 数据库里本服务会读写的表结构（建表、迁移都基于它）。
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """声明式基类"""
    pass
