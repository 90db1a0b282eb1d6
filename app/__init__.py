"""
Tutoring Portal Service - 应用主包

补习班门户的服务端：学生 / 老师文档交换、账号注销、论坛、页面访问网关。
认证、对象存储、数据库都由外部 BaaS 提供，本服务只做编排。

子模块：
- api/        : API 路由和依赖注入
- auth/       : 会话认证（BaaS access token -> 用户 + 角色）
- db/         : 数据库连接和会话管理
- models/     : SQLAlchemy ORM 数据模型
- schemas/    : Pydantic 请求/响应模式
- services/   : 业务逻辑（角色、文档、注销、论坛、Saga 执行器）
- middleware/ : 请求追踪、审计、页面网关
- infra/      : 基础设施（日志、BaaS 认证 / 存储客户端）

分层：
    API层 → 服务层 → 数据访问层 / BaaS 客户端
"""
