class BaaSError(Exception):
    """BaaS 调用错误（认证 / 存储接口返回非 2xx）"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthError(BaaSError):
    """认证服务错误"""


class StorageError(BaaSError):
    """对象存储错误"""

    @property
    def is_not_found(self) -> bool:
        if self.status_code == 404:
            return True
        return "not found" in self.message.lower()

    @property
    def is_permission_denied(self) -> bool:
        if self.status_code == 403:
            return True
        return "permission" in self.message.lower()


class DocumentValidationError(Exception):
    """上传文件校验失败（类型或大小不符合要求）"""


class DocumentNotFoundError(Exception):
    """文档不存在或无权访问"""


class TeacherAccountProtectedError(Exception):
    """老师账号不允许注销"""


class ForumValidationError(Exception):
    """论坛输入校验失败"""


class ForumError(Exception):
    """论坛写入错误"""


class ForumTopicNotFoundError(Exception):
    """论坛主题不存在"""


class DocumentOperationError(Exception):
    """文档上传 / 删除流程在某一步失败"""

    def __init__(self, message: str, step: str | None = None):
        super().__init__(message)
        self.message = message
        self.step = step
