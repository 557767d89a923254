"""
TopoTable - Structured Logging
Console and rotating JSON file output. Keyword arguments passed to a logger
call, or bound with ContextLoggerAdapter.bind(), travel as structured context
(ref_id, rows, elements...) next to the message.
"""
import logging
import logging.handlers
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

ROOT_LOGGER = "topotable"

# Third-party loggers that drown out query logs below WARNING
NOISY_LOGGERS = ("httpx", "httpcore")

RESET = "\033[0m"
LEVEL_STYLES = {
    logging.DEBUG: "\033[94m",
    logging.INFO: "\033[92m",
    logging.WARNING: "\033[93m",
    logging.ERROR: "\033[91m",
    logging.CRITICAL: "\033[95m",
}
CONTEXT_STYLE = "\033[96m"

_RESERVED_KWARGS = ("extra", "exc_info", "stack_info", "stacklevel")


class ConsoleFormatter(logging.Formatter):
    """Human-readable lines; context rendered as trailing key=value pairs"""

    def __init__(self, fmt: Optional[str] = None, color: bool = True):
        super().__init__(fmt)
        self.color = color

    def format(self, record):
        levelname = record.levelname
        if self.color:
            style = LEVEL_STYLES.get(record.levelno, RESET)
            record.levelname = f"{style}{levelname}{RESET}"
        try:
            message = super().format(record)
        finally:
            # The file handler formats the same record after us
            record.levelname = levelname

        context = getattr(record, "context", None)
        if context:
            pairs = " ".join(f"{k}={v}" for k, v in context.items())
            message = f"{message} {CONTEXT_STYLE}[{pairs}]{RESET}" if self.color else f"{message} [{pairs}]"
        return message


class JSONFormatter(logging.Formatter):
    """One JSON object per line for the log file"""

    def format(self, record):
        log_obj = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        log_obj.update(getattr(record, "context", None) or {})

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


class ContextLoggerAdapter(logging.LoggerAdapter):
    """
    logger.info("Extraction complete", ref_id="A", rows=12)

    Bound context (self.extra) is merged under per-call keyword context.
    """

    def process(self, msg, kwargs):
        call_context = {k: kwargs.pop(k) for k in list(kwargs) if k not in _RESERVED_KWARGS}
        context: Dict[str, Any] = {**self.extra, **call_context}

        extra = kwargs.get("extra") or {}
        extra["context"] = context
        kwargs["extra"] = extra
        return msg, kwargs

    def bind(self, **context) -> "ContextLoggerAdapter":
        """Child adapter that adds context to every record, e.g. a query's ref_id"""
        return ContextLoggerAdapter(self.logger, {**self.extra, **context})


def _use_color(stream) -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def setup_logging(config: Any) -> logging.Logger:
    """Install console and file handlers on the topotable root logger"""
    settings = config.logging
    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(settings.level)
    root_logger.propagate = False

    # Safe to call again (tests, uvicorn reload)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ConsoleFormatter(settings.format, color=_use_color(sys.stdout)))
    root_logger.addHandler(console_handler)

    if settings.file:
        Path(settings.file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            settings.file,
            maxBytes=settings.max_size_mb * 1024 * 1024,
            backupCount=settings.backup_count
        )
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    if root_logger.getEffectiveLevel() > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.debug(f"Logging configured at {settings.level}")
    return root_logger


def get_logger(name: str) -> ContextLoggerAdapter:
    """Context-aware logger below the topotable root"""
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return ContextLoggerAdapter(logging.getLogger(name), {})
