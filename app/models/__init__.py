"""
数据模型层 (ORM Models)

本服务读写的表都在 BaaS 自带的 Postgres 里（用户身份本身在认证服务中，不在这里）。

数据模型关系图：
    auth user (认证服务)
       │
       ├── UserRole   (user_roles，至多一行)
       ├── Profile    (profiles，展示信息)
       ├── Document   (documents，N 个上传文件)
       └── ForumTopic (forum_topics)
              │
              └── ForumReply (forum_replies)

    AuditLog (audit_logs，本服务的操作留痕)
"""

from app.models.audit_log import AuditLog
from app.models.document import Document
from app.models.forum import FORUM_CATEGORIES, ForumReply, ForumTopic
from app.models.profile import Profile
from app.models.user_role import ROLE_STUDENT, ROLE_TEACHER, VALID_ROLES, UserRole

__all__ = [
    "AuditLog",
    "Document",
    "FORUM_CATEGORIES",
    "ForumReply",
    "ForumTopic",
    "Profile",
    "ROLE_STUDENT",
    "ROLE_TEACHER",
    "UserRole",
    "VALID_ROLES",
]
