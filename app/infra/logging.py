"""
结构化日志配置

- 生产环境输出 JSON（每行一条），开发 / 测试环境输出彩色单行
- 每条日志自动带上 request_id 和当前登录用户 user_id（ContextVar）
- Saga 步骤日志带 saga / step 字段，控制台显示为 [saga.step]
- 邮箱、access token 不直接写进日志，使用 mask_email / mask_token

使用示例：
    from app.infra.logging import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__)
    logger.info("文档已删除", extra={"document_id": "xxx"})
"""

import json
import logging
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from app.config import get_settings

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)

# 第三方库只保留 WARNING 以上
NOISY_LOGGERS = (
    "uvicorn.access",
    "uvicorn.error",
    "httpx",
    "httpcore",
    "sqlalchemy.engine",
    "aiosqlite",
)


def get_request_id() -> str | None:
    return request_id_var.get()


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def get_user_id() -> str | None:
    return user_id_var.get()


def set_user_id(user_id: str | None) -> None:
    """会话依赖解析出用户后写入；每个请求开始时由追踪中间件清空"""
    user_id_var.set(user_id)


def mask_email(email: str | None) -> str:
    """alice@example.com -> a***@example.com"""
    if not email or "@" not in email:
        return "-"
    local, domain = email.split("@", 1)
    return f"{local[:1]}***@{domain}"


def mask_token(token: str | None) -> str:
    if not token:
        return "-"
    return f"{token[:6]}..." if len(token) > 10 else "***"


class ContextFilter(logging.Filter):
    """把 request_id / user_id 写到 record 上，格式化器统一从 record 读取"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        record.user_id = get_user_id()
        return True


class JSONFormatter(logging.Formatter):
    """
    JSON 格式日志

    输出格式：
    {
        "timestamp": "2026-01-01T00:00:00+00:00",
        "level": "INFO",
        "logger": "app.services.account",
        "message": "账号已注销: ...",
        "request_id": "abc123",
        "user_id": "6f1c...",
        "saga": "delete_account",
        "step": "remove_blobs",
        "extra": {...}
    }
    """

    STANDARD_ATTRS = {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "taskName", "message", "request_id", "user_id", "saga", "step",
    }

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in ("request_id", "user_id", "saga", "step"):
            value = getattr(record, key, None)
            if value:
                log_data[key] = value

        if record.levelno <= logging.DEBUG:
            log_data["location"] = f"{record.pathname}:{record.lineno}"

        extra = {
            k: v for k, v in record.__dict__.items()
            if k not in self.STANDARD_ATTRS and not k.startswith("_")
        }
        if extra:
            log_data["extra"] = extra

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    开发环境的单行格式

    2026-01-01 00:00:00 INFO     [req12345|user-1] [delete_account.remove_blobs] app.services.saga - message
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        color = self.COLORS.get(record.levelname, "")
        parts = [f"{timestamp} {color}{record.levelname:8}{self.RESET}"]

        request_id = getattr(record, "request_id", None)
        if request_id:
            user_id = getattr(record, "user_id", None) or "anon"
            parts.append(f"[{request_id[:8]}|{user_id[:8]}]")

        saga = getattr(record, "saga", None)
        if saga:
            parts.append(f"[{saga}.{getattr(record, 'step', '?')}]")

        parts.append(f"{record.name} -")
        parts.append(record.getMessage())

        result = " ".join(parts)
        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)
        return result


def setup_logging(
    level: str | None = None,
    json_format: bool | None = None,
) -> None:
    """
    配置应用日志

    Args:
        level: 日志级别，默认读取 LOG_LEVEL
        json_format: 是否输出 JSON，默认读取 LOG_JSON，未配置时 dev/test 以外的环境用 JSON
    """
    settings = get_settings()

    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    if json_format is None:
        json_format = settings.log_json
    if json_format is None:
        json_format = settings.environment not in ("dev", "development", "test")

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())
    handler.setFormatter(JSONFormatter() if json_format else ConsoleFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for noisy_logger in NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    logging.getLogger("app").setLevel(log_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class RequestTimer:
    """请求计时（毫秒）"""

    def __init__(self):
        self.start_time = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self.start_time) * 1000, 2)
