from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timezone

from app.core.request_context import current_context

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_SQL = os.getenv("LOG_SQL", "").strip().lower() in {"1", "true", "yes", "on"}

_SENSITIVE_PATTERNS = [
    re.compile(r"(authorization\s*[:=]\s*bearer\s+)([^\s\"]+)", re.IGNORECASE),
    re.compile(r"((?:token|password|secret)\s*[:=]\s*)([^\s\",}]+)", re.IGNORECASE),
    re.compile(r"((?:cart_session|admin_session)=)([^\s;\",}]+)", re.IGNORECASE),
]

# campos de domínio aceitos via extra={...}
_EXTRA_FIELDS = (
    "endpoint",
    "method",
    "status_code",
    "duration_ms",
    "order_id",
    "size_id",
    "discount_code_id",
    "cart_session_id",
)


def mask_sensitive(value: str) -> str:
    for pattern in _SENSITIVE_PATTERNS:
        value = pattern.sub(r"\1***", value)
    return value


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        context = current_context()
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "request_id": getattr(record, "request_id", None) or context.request_id,
            "session_id": getattr(record, "session_id", None) or context.session_id,
            "user_id": getattr(record, "user_id", None) or context.user_id,
            "message": mask_sensitive(record.getMessage()),
        }
        payload.update(
            {field: getattr(record, field) for field in _EXTRA_FIELDS if getattr(record, field, None) is not None}
        )
        if record.exc_info:
            payload["exception"] = mask_sensitive(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging() -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(LOG_LEVEL)
    root_logger.addHandler(handler)

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(LOG_LEVEL)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if LOG_SQL else logging.WARNING)
