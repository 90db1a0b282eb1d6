"""
中间件模块

提供 FastAPI 中间件：
- RequestTraceMiddleware: 请求追踪和日志记录
- AuditLogMiddleware: 关键写操作审计
- AccessGateMiddleware: 页面访问网关（登录跳转）
"""

from app.middleware.access_gate import AccessGateMiddleware
from app.middleware.audit import AuditLogMiddleware
from app.middleware.request_trace import RequestTraceMiddleware

__all__ = ["AccessGateMiddleware", "AuditLogMiddleware", "RequestTraceMiddleware"]
