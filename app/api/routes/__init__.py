"""
API 路由汇总

将所有子路由注册到主路由器，统一对外暴露。

路由模块说明：
- health.py      : 健康检查接口
- auth.py        : 注册、登录、登出、找回密码、老师开通
- documents.py   : 文档上传、列表、删除
- teacher.py     : 老师门户（学生列表、按来源过滤、给学生上传反馈）
- account.py     : 账号注销
- maintenance.py : 地址批量刷新、文件访问诊断
- forum.py       : 论坛主题与回复
- pages.py       : 受保护页面的数据
- debug.py       : 调试接口（会话、存储桶）
"""

from fastapi import APIRouter

from app.api.routes import (
    account,
    auth,
    debug,
    documents,
    forum,
    health,
    maintenance,
    pages,
    teacher,
)

# 主路由器，包含所有 API 端点
api_router = APIRouter()

# 注册各子路由，tags 用于 API 文档分组
api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router)  # auth 路由自带 tags
api_router.include_router(auth.admin_router)
api_router.include_router(documents.router, tags=["documents"])
api_router.include_router(teacher.router)
api_router.include_router(account.router, tags=["account"])
api_router.include_router(maintenance.router)
api_router.include_router(forum.router)
api_router.include_router(pages.router)
api_router.include_router(debug.router)
