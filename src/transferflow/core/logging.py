"""
TransferFlow structured logging.

Structured output for debugging the transfer flow. Credential material
(tokens, auth data, ciphertext) is masked by ``redact_credentials`` before
any renderer sees it.
"""

from __future__ import annotations

import logging
import sys
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, WrappedLogger

if TYPE_CHECKING:
    from transferflow.core.config import LoggingConfig


_configured = False

REDACTED = "<redacted>"

# Event keys that may carry credential material
CREDENTIAL_KEYS = frozenset(
    {
        "token",
        "code",
        "oauth_verifier",
        "frob",
        "auth_data",
        "export_auth_data",
        "import_auth_data",
        "encrypted_auth_data",
        "credentials",
    }
)


def redact_credentials(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask credential values that were passed as log context."""
    for key in CREDENTIAL_KEYS.intersection(event_dict):
        if event_dict[key] is not None:
            event_dict[key] = REDACTED
    return event_dict


def setup_logging(config: LoggingConfig) -> None:
    """Configure structured logging for TransferFlow."""
    global _configured

    if _configured:
        return

    handlers: list[logging.Handler] = []

    if config.console_enabled:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, config.level))
        handlers.append(console_handler)

    if config.file_enabled:
        config.log_directory.mkdir(parents=True, exist_ok=True)
        log_file = config.log_directory / f"transferflow_{datetime.now().strftime('%Y%m%d')}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)

    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=logging.DEBUG,
        handlers=handlers,
        format="%(message)s",
    )

    shared_processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_credentials,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if config.json_format:
        renderers: list[structlog.types.Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]

    structlog.configure(
        processors=shared_processors + renderers,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name or "transferflow")


class OperationLogger:
    """Context manager timing one backend call.

    Start and completion are logged at debug level. A failure is logged as a
    warning, with the HTTP status when the error carries one; the exception
    always propagates.
    """

    def __init__(
        self,
        operation: str,
        logger: structlog.stdlib.BoundLogger | None = None,
        **context: Any,
    ):
        self.operation = operation
        self.logger = (logger or get_logger()).bind(operation=operation, **context)
        self._started: float | None = None

    def __enter__(self) -> OperationLogger:
        self._started = time.monotonic()
        self.logger.debug("Backend call started")
        return self

    @property
    def elapsed_seconds(self) -> float:
        if self._started is None:
            return 0.0
        return round(time.monotonic() - self._started, 3)

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if exc_type is None:
            self.logger.debug("Backend call completed", duration_seconds=self.elapsed_seconds)
            return

        self.logger.warning(
            "Backend call failed",
            duration_seconds=self.elapsed_seconds,
            error_type=exc_type.__name__,
            error=str(exc_val),
            status_code=getattr(exc_val, "status_code", None),
        )
