import json
import logging
import sys
from pathlib import Path
from typing import Any, cast

from loguru import logger
from loguru._defaults import LOGURU_FORMAT

LOG_FILE_PATTERN = "coinscope_{time:YYYY-MM-DD}.log"
REDACTED = "***REDACTED***"

# Keys in a record's `extra` whose values never reach a sink.
SENSITIVE_KEYS = frozenset({"api_key", "x-cg-demo-api-key", "password", "token"})

# Chatty third-party loggers, raised to these levels before reaching loguru.
QUIET_LOGGERS = {"httpx": "WARNING", "httpcore": "WARNING", "hpack": "WARNING"}


class InterceptHandler(logging.Handler):
    """Redirects standard logging records (httpx, asyncio, Qt) into Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Report the caller of the stdlib logger, not the logging module.
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = cast(Any, frame.f_back)
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _redact_filter(record: dict[str, Any]) -> bool:
    """Masks sensitive string values in ``extra``. Records are never dropped."""
    extra = record["extra"]
    for key in SENSITIVE_KEYS.intersection(extra):
        if isinstance(extra[key], str):
            extra[key] = REDACTED
    return True


def _serialize_record(record: dict[str, Any]) -> None:
    """Patcher storing a one-line JSON rendering in ``extra['serialized']``.

    The file sink prints that field verbatim, which yields JSON lines.
    """
    _redact_filter(record)
    entry: dict[str, Any] = {
        "ts": record["time"].isoformat(),
        "level": record["level"].name,
        "logger": record["name"],
        "where": f"{record['file'].name}:{record['line']} ({record['function']})",
        "msg": record["message"],
    }
    context = {k: v for k, v in record["extra"].items() if k != "serialized"}
    if context:
        entry["context"] = context
    if record["exception"] is not None:
        entry["exception"] = repr(record["exception"].value)
    record["extra"]["serialized"] = json.dumps(entry, default=str)


def _add_file_sink(log_dir: Path, level: str) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_dir / LOG_FILE_PATTERN,
        level=level.upper(),
        format="{extra[serialized]}",
        filter=_redact_filter,
        rotation="00:00",
        retention="7 days",
        compression="zip",
        enqueue=True,  # file writes happen off the event loop thread
        backtrace=False,
        diagnose=False,
    )


def _route_stdlib_logging() -> None:
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def setup_logging(
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    log_dir: Path | None = None,
) -> None:
    """Installs the sinks used for the lifetime of the application.

    The console gets Loguru's coloured default format. With ``log_dir`` set,
    a JSON-lines file is written there as well, starting a new file at
    midnight and keeping a week of zipped history. Records from the standard
    logging module are forwarded into the same sinks.

    Args:
        console_level: Minimum level written to stderr.
        file_level: Minimum level written to the log file.
        log_dir: Directory for log files; None disables file logging.
    """
    logger.remove()
    logger.configure(patcher=_serialize_record)
    logger.add(
        sys.stderr,
        level=console_level.upper(),
        format=LOGURU_FORMAT,
        filter=_redact_filter,
        colorize=True,
    )
    if log_dir is not None:
        _add_file_sink(log_dir, file_level)
    _route_stdlib_logging()

    logger.debug(
        f"Logging ready (console={console_level}, file={file_level}, dir={log_dir})."
    )
