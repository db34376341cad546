"""
Diagnostics sinks for errors worth keeping even when debug logging is off.

The gateway API is undocumented and its response shapes drift between
firmware versions. When a response fails to decode, the client hands the
endpoint name and raw body to a sink so the mismatch can be reported.
"""

from __future__ import annotations

import logging
from typing import Protocol

from powerwall.obs.logging import log_event


class DiagnosticsSink(Protocol):
    def report(self, message: str, error: BaseException) -> None: ...


class LoggingDiagnosticsSink:
    """Writes each report as an ERROR-level ``decode_error`` event."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    def report(self, message: str, error: BaseException) -> None:
        log_event(
            self._logger,
            logging.ERROR,
            "decode_error",
            message,
            error=str(error),
            error_type=type(error).__name__,
        )
