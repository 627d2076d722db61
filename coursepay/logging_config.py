from __future__ import annotations

import json
import logging
import logging.config
import os
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from coursepay.utils.correlation import get_correlation_id


# ================= Sensitive Data Masking ================= #
_Rule = Tuple[re.Pattern, Callable[[re.Match], str]]

_MASK_RULES: List[_Rule] = [
    # Authorization: Bearer <token>
    (
        re.compile(r"(Authorization\s*:\s*Bearer\s+)([A-Za-z0-9._-]+)", re.IGNORECASE),
        lambda m: m.group(1) + "[REDACTED]",
    ),
    # "api_token": "..." and friends inside serialized payloads
    (
        re.compile(r"((?:access_token|api_token|bot_token)\"?\s*[:=]\s*\"?)([A-Za-z0-9._:-]+)", re.IGNORECASE),
        lambda m: m.group(1) + "[REDACTED]",
    ),
    # Telegram Bot API urls: /bot<id>:<secret>/method
    (re.compile(r"(/bot)(\d+:[A-Za-z0-9_-]+)"), lambda m: m.group(1) + "[REDACTED]"),
    # bKash/Nagad wallet numbers, optional +88; operator prefix and last 4 digits stay readable
    (
        re.compile(r"(?<!\d)(?:\+?88)?(01\d)(\d{4})(\d{4})(?!\d)"),
        lambda m: m.group(1) + "****" + m.group(3),
    ),
]

_ACCOUNT_KEYS = {"sender_account", "account_number", "msisdn", "phone"}
_TOKEN_KEYS = {"token", "access_token", "api_token", "enrollment_api_token", "telegram_bot_token"}
_HEADER_KEYS = {"url", "authorization", "auth"}


def _mask_tail(val: str, keep: int = 4) -> str:
    if len(val) <= keep:
        return "[REDACTED]"
    return "***" + val[-keep:]


def _sanitize_str(s: str) -> str:
    if not isinstance(s, str) or not s:
        return s
    for pattern, repl in _MASK_RULES:
        s = pattern.sub(repl, s)
    return s


def _sanitize_value(key: str, value: Any) -> Any:
    lk = key.lower()
    if lk in _TOKEN_KEYS:
        return _mask_tail(value) if isinstance(value, str) else "[REDACTED]"
    if lk in _ACCOUNT_KEYS:
        return _mask_tail(str(value))
    if lk in _HEADER_KEYS:
        return _sanitize_str(str(value))
    return _sanitize_obj(value)


def _sanitize_obj(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _sanitize_value(str(k), v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return type(obj)(_sanitize_obj(v) for v in obj)
    if isinstance(obj, str):
        return _sanitize_str(obj)
    return obj


class SensitiveDataFilter(logging.Filter):
    """Masks tokens and wallet numbers in the message, its args and ``extra``."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            if isinstance(record.msg, str):
                record.msg = _sanitize_str(record.msg)
            if isinstance(record.args, (tuple, dict)):
                record.args = _sanitize_obj(record.args)
            extra = getattr(record, "extra", None)
            if isinstance(extra, dict):
                record.extra = _sanitize_obj(extra)
        except Exception:
            # Never break logging
            pass
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        cid = get_correlation_id()
        if cid:
            payload["correlation_id"] = cid
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        return json.dumps(_sanitize_obj(payload), ensure_ascii=False, default=str)


# ================= Setup ================= #
@dataclass
class LogOptions:
    app_env: str
    level: str
    fmt: str
    file_path: Optional[str]

    @classmethod
    def from_env(cls) -> "LogOptions":
        app_env = os.getenv("APP_ENV", "production").lower()
        prod = app_env == "production"
        level = os.getenv("LOG_LEVEL", "INFO" if prod else "DEBUG").upper()
        fmt = os.getenv("LOG_FORMAT", "json" if prod else "text").lower()
        path = os.getenv("LOG_FILE_PATH", os.path.join(os.getcwd(), "logs", "coursepay.log"))
        flag = os.getenv("LOG_TO_FILE")
        if flag is None:
            to_file = _file_writable(path)
        else:
            to_file = flag.strip().lower() in {"1", "true", "yes", "on"}
        return cls(app_env=app_env, level=level, fmt=fmt, file_path=path if to_file else None)


def _file_writable(path: str) -> bool:
    try:
        folder = os.path.dirname(path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        with open(path, "a", encoding="utf-8"):
            pass
        return True
    except OSError:
        return False


def _handlers(opts: LogOptions, formatter: str) -> Dict[str, Dict[str, Any]]:
    common = {"level": opts.level, "formatter": formatter, "filters": ["sensitive"]}
    handlers: Dict[str, Dict[str, Any]] = {
        "console": {"class": "logging.StreamHandler", "stream": "ext://sys.stdout", **common},
    }
    if opts.file_path:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": opts.file_path,
            "maxBytes": 5 * 1024 * 1024,  # 5MB
            "backupCount": 3,
            "encoding": "utf-8",
            "delay": True,
            **common,
        }
    return handlers


def setup_logging() -> None:
    """Configure structured logging with sensitive data masking.

    ENV:
      - APP_ENV: production|staging|development (default: production)
      - LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default: INFO in prod, DEBUG otherwise)
      - LOG_FORMAT: json|text (default: json in prod, text otherwise)
      - LOG_TO_FILE: 1/0 (default: 1 if the log file is writable)
      - LOG_FILE_PATH: path to log file (default: ./logs/coursepay.log)
    """
    opts = LogOptions.from_env()
    formatter = "json" if opts.fmt == "json" else "plain"
    handlers = _handlers(opts, formatter)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"sensitive": {"()": SensitiveDataFilter}},
            "formatters": {
                "json": {"()": JsonFormatter},
                "plain": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
            },
            "handlers": handlers,
            "root": {"level": opts.level, "handlers": list(handlers)},
            "loggers": {
                "aiogram": {"level": opts.level},
                # Enrollment calls log every request at INFO
                "httpx": {"level": "WARNING" if opts.app_env == "production" else "INFO"},
                "sqlalchemy.engine": {"level": "WARNING"},
                "aiosqlite": {"level": "WARNING"},
            },
        }
    )

    logging.getLogger(__name__).info(
        "logging configured",
        extra={
            "extra": {
                "env": opts.app_env,
                "level": opts.level,
                "format": opts.fmt,
                "file": opts.file_path,
            }
        },
    )
