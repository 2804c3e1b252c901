"""
Logging setup for the analyzer.

Page images and PDFs travel through the pipeline as base64 text; every handler
installed here redacts those payloads so logs and debug responses stay readable.
"""

from __future__ import annotations

import json
import logging
import re
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

_DATA_URL_RE = re.compile(r"data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<b64>[A-Za-z0-9+/=]+)")
_BARE_B64_RE = re.compile(r"[A-Za-z0-9+/]{200,}={0,2}")


def redact_base64(text: str) -> str:
    if not text:
        return text

    def data_url(m: re.Match[str]) -> str:
        return f"data:{m.group('mime')};base64,<base64 redacted: {len(m.group('b64'))} chars>"

    out = _DATA_URL_RE.sub(data_url, text)
    return _BARE_B64_RE.sub(lambda m: f"<base64 redacted: {len(m.group(0))} chars>", out)


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return redact_base64(value)
    if isinstance(value, dict):
        return {k: _redact_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_redact_value(v) for v in value]
    return value


class Base64RedactionFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except Exception:
            return True
        record.msg = redact_base64(message)
        record.args = None
        extra = getattr(record, "extra_data", None)
        if extra:
            record.extra_data = _redact_value(extra)
        return True


class JSONFormatter(logging.Formatter):
    def __init__(self, service_name: str = "baropodo"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }
        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        extra = getattr(record, "extra_data", None)
        if extra:
            log_data["data"] = extra
        return json.dumps(log_data, default=str)


def setup_logging(level: int = logging.INFO, use_json: bool = True) -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(Base64RedactionFilter())
    if use_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root_logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


class _RequestCaptureHandler(logging.Handler):
    def __init__(self, request_id: str):
        super().__init__(level=logging.DEBUG)
        self.request_id = request_id
        self.lines: list[str] = []
        self.addFilter(Base64RedactionFilter())
        self.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))

    def filter(self, record: logging.LogRecord) -> bool:
        # Concurrent requests share loggers; keep only this request's records.
        if request_id_var.get() != self.request_id:
            return False
        return super().filter(record)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.lines.append(self.format(record))
        except Exception:
            self.handleError(record)


# Logger level to restore once the last concurrent capture on that logger ends.
_saved_levels: dict[str, int] = {}


def _has_capture(logger: logging.Logger) -> bool:
    return any(isinstance(h, _RequestCaptureHandler) for h in logger.handlers)


@contextmanager
def capture_logs(logger_name: str = "baropodo") -> Iterator[list[str]]:
    """Collect this request's log lines (redacted) into the yielded list."""
    request_id = str(uuid.uuid4())[:8]
    token = request_id_var.set(request_id)
    handler = _RequestCaptureHandler(request_id)
    logger = logging.getLogger(logger_name)
    if not _has_capture(logger):
        _saved_levels[logger_name] = logger.level
    # Output handlers keep their own levels; the logger itself must pass DEBUG through.
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
    try:
        yield handler.lines
    finally:
        logger.removeHandler(handler)
        if not _has_capture(logger):
            logger.setLevel(_saved_levels.pop(logger_name, logging.NOTSET))
        request_id_var.reset(token)
