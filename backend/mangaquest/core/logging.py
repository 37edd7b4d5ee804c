"""Logging configuration."""

from __future__ import annotations

import json
import linecache
import logging
import sys
import traceback
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from structlog.types import EventDict

# Type for exception info tuple (from sys.exc_info())
ExcInfo = tuple[type[BaseException] | None, BaseException | None, TracebackType | None]

TracebackFrame = dict[str, str | int | None]

ExceptionDetails = dict[
    str,
    None | str | list[TracebackFrame],
]

APP_LOG_FILE = "mangaquest.json.log"
DB_LOG_FILE = "mangaquest.db.json.log"
HTTP_LOG_FILE = "mangaquest.http.json.log"

# Chatty third-party loggers that get their own file when file logging is enabled
DB_LOGGERS = (
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.engine.Engine",
    "sqlalchemy.pool",
    "sqlalchemy.dialects",
    "aiosqlite",
)
HTTP_LOGGERS = (
    "httpx",
    "httpcore",
    "httpcore.connection",
    "httpcore.http11",
)
SERVER_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error", "apscheduler")


def format_exception_for_json(
    exc_info: ExcInfo | None,
) -> ExceptionDetails:
    """Format exception information for JSON logging.

    Args:
        exc_info: Exception info tuple from sys.exc_info() or None

    Returns:
        Dictionary with exception_type, exception_message, exception_module,
        traceback_frames and traceback_text. Empty if there is no exception.
    """
    if exc_info is None or exc_info == (None, None, None):
        return {}

    exc_type, exc_value, exc_tb = exc_info

    exception_details: ExceptionDetails = {
        "exception_type": exc_type.__name__ if exc_type else None,
        "exception_message": str(exc_value) if exc_value else None,
        "exception_module": exc_type.__module__ if exc_type else None,
    }

    if exc_tb:
        tb_frames: list[TracebackFrame] = []
        current_tb: TracebackType | None = exc_tb

        while current_tb is not None:
            frame = current_tb.tb_frame
            frame_info: TracebackFrame = {
                "filename": frame.f_code.co_filename,
                "lineno": current_tb.tb_lineno,
                "function": frame.f_code.co_name,
            }
            line = linecache.getline(frame.f_code.co_filename, current_tb.tb_lineno)
            if line:
                frame_info["source_line"] = line.strip()

            tb_frames.append(frame_info)
            current_tb = current_tb.tb_next

        exception_details["traceback_frames"] = tb_frames
        exception_details["traceback_text"] = "".join(
            traceback.format_exception(exc_type, exc_value, exc_tb)
        )

    return exception_details


def exception_processor(
    logger: structlog.BoundLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Replace exc_info with structured exception fields.

    Adds ``exception`` (details dict) and ``exception_summary`` ("Type: message")
    so exceptions are queryable in JSON logs.
    """
    exc_info = event_dict.pop("exc_info", None)

    if exc_info is True:
        exc_info = sys.exc_info()
    elif isinstance(exc_info, BaseException):
        exc_info = (type(exc_info), exc_info, exc_info.__traceback__)

    if exc_info and exc_info != (None, None, None):
        exception_details = format_exception_for_json(exc_info)  # type: ignore[arg-type]
        if exception_details:
            event_dict["exception"] = exception_details

            exc_type = exception_details.get("exception_type")
            exc_msg = exception_details.get("exception_message")
            if exc_type and exc_msg:
                event_dict["exception_summary"] = f"{exc_type}: {exc_msg}"

    return event_dict


class JSONFormatter(logging.Formatter):
    """JSON formatter for standard library loggers (database and HTTP client logs)."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = format_exception_for_json(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, ensure_ascii=False)


def _close_handlers(logger: logging.Logger) -> None:
    """Close all handlers for a logger before clearing them."""
    for handler in logger.handlers[:]:
        try:
            handler.close()
        except OSError:
            pass


def _route_loggers(names: tuple[str, ...], handler: logging.Handler, level: int) -> None:
    """Send the named stdlib loggers only to ``handler``."""
    for name in names:
        named_logger = logging.getLogger(name)
        named_logger.setLevel(level)
        named_logger.propagate = False
        _close_handlers(named_logger)
        named_logger.handlers.clear()
        named_logger.addHandler(handler)


def setup_logging(debug: bool = False, logs_dir: Path | None = None) -> None:
    """Setup structured logging with structlog.

    Configures:
    - Application logs: stdout (pretty in debug, JSON otherwise), or a JSON file
      when logs_dir is given
    - Database logs (SQLAlchemy/aiosqlite): separate JSON file
    - HTTP client logs (httpx/httpcore): separate JSON file, WARNING and above

    Args:
        debug: Enable debug logging
        logs_dir: Optional directory for JSON log files
    """
    log_level = logging.DEBUG if debug else logging.INFO
    db_log_level = logging.INFO if debug else logging.WARNING
    http_log_level = logging.WARNING

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(log_level)

    app_handlers: list[logging.Handler] = []
    app_file_handler: logging.Handler | None = None
    db_file_handler: logging.Handler | None = None
    http_file_handler: logging.Handler | None = None

    if logs_dir:
        try:
            logs_dir.mkdir(parents=True, exist_ok=True)

            app_file_handler = logging.FileHandler(logs_dir / APP_LOG_FILE, encoding="utf-8")
            app_file_handler.setLevel(log_level)
            app_handlers.append(app_file_handler)

            db_file_handler = logging.FileHandler(logs_dir / DB_LOG_FILE, encoding="utf-8")
            db_file_handler.setLevel(logging.DEBUG)
            db_file_handler.setFormatter(JSONFormatter())

            http_file_handler = logging.FileHandler(logs_dir / HTTP_LOG_FILE, encoding="utf-8")
            http_file_handler.setLevel(logging.DEBUG)
            http_file_handler.setFormatter(JSONFormatter())
        except OSError as e:
            sys.stderr.write(f"Warning: Failed to setup file logging: {e}\n")

    if not app_file_handler:
        app_handlers.append(stdout_handler)

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        handlers=app_handlers,
        force=True,
    )

    # Server and scheduler logs are unstructured; keep them on stdout only
    _route_loggers(SERVER_LOGGERS, stdout_handler, log_level)

    if db_file_handler:
        _route_loggers(DB_LOGGERS, db_file_handler, db_log_level)

    if http_file_handler:
        _route_loggers(HTTP_LOGGERS, http_file_handler, http_log_level)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        exception_processor,
        structlog.processors.format_exc_info,
    ]

    # File logs are always JSON; console is pretty only in debug mode
    if app_file_handler or not debug:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    logging.getLogger().setLevel(log_level)

    logger = structlog.get_logger("mangaquest.logging")
    logger.info(
        "Logging configured",
        level=logging.getLevelName(log_level),
        debug=debug,
        app_log_file=str(logs_dir / APP_LOG_FILE) if app_file_handler and logs_dir else None,
        db_log_file=str(logs_dir / DB_LOG_FILE) if db_file_handler and logs_dir else None,
        db_log_level=logging.getLevelName(db_log_level),
        http_log_file=str(logs_dir / HTTP_LOG_FILE) if http_file_handler and logs_dir else None,
        http_log_level=logging.getLevelName(http_log_level),
    )
