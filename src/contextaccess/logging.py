"""Logging utilities for contextaccess.

This module provides:
- Logging configuration from AccessConfig
- Safe, length-bounded previews of logged values
- A formatter that emits principal/tenant context (JSON or plain text)
- A logger adapter that stamps principal_id and tenant_id on records
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from .config import AccessConfig, LogLevel

# Record attributes owned by the logging module itself
_RESERVED_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "message", "pathname", "process", "processName", "relativeCreated",
        "thread", "threadName", "exc_info", "exc_text", "stack_info",
        "taskName", "principal_id", "tenant_id",
    }
)


def safe_preview(value: Any, limit: int = 240) -> str:
    """Create a safe, length-bounded single-line preview of a value.

    Args:
        value: The value to preview (any type)
        limit: Maximum length of the preview (default: 240)

    Returns:
        A truncated string representation
    """
    if value is None:
        return ""

    if isinstance(value, str):
        s = value
    elif isinstance(value, (dict, list, tuple, set, frozenset)):
        try:
            s = json.dumps(
                sorted(value) if isinstance(value, (set, frozenset)) else value,
                default=str,
                ensure_ascii=False,
            )
        except (TypeError, ValueError):
            s = str(value)
    else:
        s = str(value)

    s = " ".join(s.split())

    if len(s) > limit:
        return s[: limit - 1] + "…"

    return s


class AccessLogFormatter(logging.Formatter):
    """Formatter that includes principal/tenant context.

    Extra fields passed via ``extra=`` are previewed with :func:`safe_preview`
    so a large grant list never floods the log line.
    """

    def __init__(
        self,
        json_format: bool = True,
        *args: Any,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.json_format = json_format

    def format(self, record: logging.LogRecord) -> str:
        principal_id = getattr(record, "principal_id", None)
        tenant_id = getattr(record, "tenant_id", None)

        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if principal_id is not None:
            log_data["principal_id"] = str(principal_id)
        if tenant_id is not None:
            log_data["tenant_id"] = str(tenant_id)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = safe_preview(value)

        if self.json_format:
            return json.dumps(log_data, default=str, ensure_ascii=False)

        parts = [
            f"[{log_data['timestamp']}]",
            log_data["level"],
            log_data["logger"],
        ]
        if tenant_id is not None:
            parts.append(f"tenant={log_data['tenant_id']}")
        if principal_id is not None:
            parts.append(f"principal={log_data['principal_id']}")
        text = " ".join(parts) + f": {log_data['message']}"
        if "exception" in log_data:
            text = f"{text}\n{log_data['exception']}"
        return text


class AccessLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds principal_id and tenant_id to log records.

    Usage:
        logger = get_access_logger(__name__, principal_id=user.id, tenant_id=tenant.id)
        logger.info("Role access synced", extra={"role_id": role.id})
    """

    def __init__(
        self,
        logger: logging.Logger,
        principal_id: Optional[int | str] = None,
        tenant_id: Optional[int | str] = None,
    ):
        super().__init__(logger, {})
        self.principal_id = principal_id
        self.tenant_id = tenant_id

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        principal_id = kwargs.pop("principal_id", self.principal_id)
        tenant_id = kwargs.pop("tenant_id", self.tenant_id)

        extra = dict(kwargs.get("extra") or {})
        if principal_id is not None:
            extra["principal_id"] = principal_id
        if tenant_id is not None:
            extra["tenant_id"] = tenant_id
        kwargs["extra"] = extra

        return msg, kwargs


def setup_logging(
    config: Optional[AccessConfig] = None,
    json_format: Optional[bool] = None,
) -> None:
    """Configure root logging for a service embedding the engine.

    Args:
        config: AccessConfig instance (if None, loads from environment)
        json_format: Override ``config.log_json``
    """
    if config is None:
        from .config import load_access_config_from_env

        config = load_access_config_from_env()

    level_map = {
        LogLevel.DEBUG: logging.DEBUG,
        LogLevel.INFO: logging.INFO,
        LogLevel.WARNING: logging.WARNING,
        LogLevel.ERROR: logging.ERROR,
        LogLevel.CRITICAL: logging.CRITICAL,
    }
    log_level = level_map.get(LogLevel(config.log_level), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        AccessLogFormatter(json_format=config.log_json if json_format is None else json_format)
    )
    root_logger.addHandler(console_handler)

    if config.service_name:
        logging.getLogger(config.service_name).setLevel(log_level)


def get_access_logger(
    name: str,
    principal_id: Optional[int | str] = None,
    tenant_id: Optional[int | str] = None,
) -> AccessLoggerAdapter:
    """Get a logger adapter bound to a principal and tenant.

    Example:
        logger = get_access_logger(__name__, principal_id=42, tenant_id="acme")
        logger.warning("Module access denied", extra={"reason": "plan_restriction"})
    """
    logger = logging.getLogger(name)
    return AccessLoggerAdapter(logger, principal_id=principal_id, tenant_id=tenant_id)


__all__ = [
    "AccessLogFormatter",
    "AccessLoggerAdapter",
    "get_access_logger",
    "safe_preview",
    "setup_logging",
]
