"""Structured logging helpers for urlfetch."""

from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from .config import DEFAULT_LOG_BACKUP_COUNT, DEFAULT_LOG_MAX_BYTES

SENSITIVE_HEADERS = {"cookie", "set-cookie", "authorization", "proxy-authorization"}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, tagged with the fetched URL when known.

    Callers attach the URL with ``extra={"url": ...}``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
        }
        url = getattr(record, "url", None)
        if url is not None:
            payload["url"] = url
        if record.exc_info:
            payload["error"] = record.exc_info[1].__class__.__name__
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True)


class SensitiveDataFilter(logging.Filter):
    """Redact sensitive header values in structured arguments.

    Handles both ``{"Authorization": ...}`` style mappings and the
    ``{"name": ..., "value": ...}`` pairs logged for each request header.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, dict):
            args = record.args
            name = args.get("name")
            sanitized = {}
            for key, value in args.items():
                if isinstance(key, str) and key.lower() in SENSITIVE_HEADERS:
                    sanitized[key] = "[redacted]"
                else:
                    sanitized[key] = value
            if isinstance(name, str) and name.lower() in SENSITIVE_HEADERS and "value" in args:
                sanitized["value"] = "[redacted]"
            record.args = sanitized
        return True


def _console_handler(level: int) -> logging.Handler:
    # stdout may carry the fetched body, so diagnostics go to stderr.
    return RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        markup=False,
        show_path=False,
        level=level,
    )


def configure_logging(
    level: int = logging.INFO,
    *,
    json_logs: bool = False,
    logfile: Optional[Path | str] = None,
    max_bytes: int = DEFAULT_LOG_MAX_BYTES,
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT,
) -> None:
    """Configure root logging with rotation and optional JSON output."""

    handlers: list[logging.Handler] = []

    console_handler = _console_handler(level)
    console_handler.addFilter(SensitiveDataFilter())
    handlers.append(console_handler)

    if logfile:
        path = Path(logfile)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.addFilter(SensitiveDataFilter())
        if json_logs:
            file_handler.setFormatter(JsonFormatter())
        else:
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
            )
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    for name in ("urllib3", "charset_normalizer"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


__all__ = ["configure_logging", "JsonFormatter", "SensitiveDataFilter"]
