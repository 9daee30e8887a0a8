from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timezone

from salon_backend.core.request_context import get_request_id, get_staff_id, get_tenant_id

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

_SENSITIVE_PATTERNS = [
    re.compile(r"(authorization\s*[:=]\s*bearer\s+)([^\s\"]+)", re.IGNORECASE),
    re.compile(r"(token\s*[:=]\s*)([^\s\",}]+)", re.IGNORECASE),
    re.compile(r"(password\s*[:=]\s*)([^\s\",}]+)", re.IGNORECASE),
    re.compile(r"(secret\s*[:=]\s*)([^\s\",}]+)", re.IGNORECASE),
    re.compile(r"(backup_code\s*[:=]\s*)([^\s\",}]+)", re.IGNORECASE),
]


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "request_id": getattr(record, "request_id", None) or get_request_id(),
            "tenant_id": getattr(record, "tenant_id", None) or get_tenant_id(),
            "staff_id": getattr(record, "staff_id", None) or get_staff_id(),
            "module": record.name,
            "message": self._mask(self.formatMessage(record)),
            "duration_ms": getattr(record, "duration_ms", None),
        }
        for key in ("endpoint", "method", "status_code", "client_ip"):
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self._mask(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False)

    def _mask(self, value: str) -> str:
        masked = value
        for pattern in _SENSITIVE_PATTERNS:
            masked = pattern.sub(r"\1***", masked)
        return masked


def configure_logging() -> None:
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(LOG_LEVEL)

    handler = logging.StreamHandler()
    formatter = JsonFormatter("%(message)s")
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(LOG_LEVEL)
