"""
数据库模块

- base.py    : SQLAlchemy 基类定义
- session.py : 数据库会话管理（连接池、异步会话工厂）

使用 SQLAlchemy 2.0 + asyncpg 直连 BaaS 自带的 Postgres 实例。
"""
