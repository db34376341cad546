"""
JSON Lines logging for gateway clients.

One entry per event, e.g.:

    {"ts": "2024-01-15T10:30:00Z", "level": "DEBUG", "client_id": "7f3a2c",
     "event": "api_response", "module": "client", "msg": "Request succeeded",
     "extra": {"status": 200, "body": "{\\"percentage\\": 81.2}"}}

``client_id`` tells apart several clients sharing one logger. Request and
response bodies go through :func:`render_body` first so credentials and
session tokens never reach a handler.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

MAX_LOGGED_BODY = 2000


@dataclass(frozen=True)
class LogSettings:
    """
    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        client_id: Fallback id for entries logged without one.
        log_file: Optional extra file destination.
        jsonl: JSON Lines when True, the stdlib default format otherwise.
    """
    level: str
    client_id: str
    log_file: Path | None
    jsonl: bool


class JsonLineFormatter(logging.Formatter):
    def __init__(self, client_id: str):
        super().__init__()
        self._client_id = client_id

    def format(self, record: logging.LogRecord) -> str:
        extra = getattr(record, "extra", {})
        if not isinstance(extra, dict):
            extra = {"value": extra}

        payload = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "client_id": getattr(record, "client_id", None) or self._client_id,
            "event": getattr(record, "event", "log"),
            "module": record.module,
            "msg": record.getMessage(),
            "extra": extra,
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def build_logger(settings: LogSettings) -> logging.Logger:
    """
    Configure the ``powerwall`` logger for the command-line front end.

    Handlers are replaced on every call and the logger does not propagate,
    so reconfiguring after the config file is read does not duplicate output.
    """
    logger = logging.getLogger("powerwall")
    logger.setLevel(settings.level)
    logger.handlers.clear()
    logger.propagate = False

    formatter = JsonLineFormatter(settings.client_id) if settings.jsonl else None

    stream_handler = logging.StreamHandler()
    if formatter:
        stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if settings.log_file:
        file_handler = logging.FileHandler(settings.log_file, encoding="utf-8")
        if formatter:
            file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def render_body(body: bytes | None, content_type: str, *, sensitive: bool = False) -> str:
    """
    Text to log in place of an HTTP body.

    Sensitive bodies (login requests and replies) become ``(sensitive)``,
    empty ones ``(empty)``, and non-text ones ``(<n> bytes)``. JSON and text
    bodies are logged verbatim up to ``MAX_LOGGED_BODY`` characters.
    """
    if sensitive:
        return "(sensitive)"
    if not body:
        return "(empty)"
    if content_type.startswith("application/json") or content_type.startswith("text/"):
        text = body.decode("utf-8", errors="replace")
        if len(text) > MAX_LOGGED_BODY:
            return f"{text[:MAX_LOGGED_BODY]}... ({len(body)} bytes)"
        return text
    return f"({len(body)} bytes)"


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    message: str,
    *,
    client_id: str | None = None,
    exc_info: logging._ExcInfoType | None = None,
    **extra: Any,
) -> None:
    """
    Log a structured event.

    ``event`` is the filterable type (``api_call``, ``auth_relogin``, ...);
    ``client_id`` is recorded on the entry itself rather than in ``extra``.

    Example:
        >>> log_event(logger, logging.DEBUG, "api_call", "Calling API",
        ...           client_id="7f3a2c", method="GET", url="https://10.0.0.5/api/status")
    """
    logger.log(
        level,
        message,
        extra={"event": event, "client_id": client_id, "extra": extra},
        exc_info=exc_info,
    )
