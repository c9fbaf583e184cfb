import logging
import os
from pathlib import Path
from typing import Any

import structlog

LOG_FILE_TIME_FORMAT = "%m/%d/%Y %H:%M:%S"

# Keys added by the shared processors that the log file line does not repeat.
_LINE_OMITTED_KEYS = ("logger", "timestamp", "_record", "_from_structlog")

_installed_handlers: list[logging.Handler] = []


def render_log_line(_: Any, __: str, event_dict: dict[str, Any]) -> str:
    """Render an event as a single server log file line.

    Format: `{timestamp} [{LEVEL}] | {event} {key=value ...}`.
    Structlog processor signature: (logger, method_name, event_dict) -> str
    """
    timestamp = event_dict.pop("line_timestamp", "")
    level = str(event_dict.pop("level", "info")).upper()
    message = event_dict.pop("event", "")
    for key in _LINE_OMITTED_KEYS:
        event_dict.pop(key, None)

    line = f"{timestamp} [{level}] | {message}"
    if event_dict:
        context = " ".join(f"{key}={value}" for key, value in event_dict.items())
        line = f"{line} {context}"
    return line


def setup_logging(log_file: Path | None = None) -> None:
    """Configures the logging system using `structlog`.

    The function uses the FILEHOST_LOG_LEVEL and FILEHOST_LOG_FORMAT environment variables
    to determine the logging level and the console format. It supports both human-readable
    and JSON-based structured logging on the console.

    Args:
        log_file: When given, every event is also appended to this file, one line per event.
    """
    log_level = os.getenv("FILEHOST_LOG_LEVEL", "INFO")

    # Switch to human readable log output if FILEHOST_LOG_FORMAT is set to "dev"
    dev_logs = os.getenv("FILEHOST_LOG_FORMAT", "") == "dev"

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if dev_logs:
        processors.append(structlog.dev.set_exc_info)
    else:
        processors.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if dev_logs:
        log_renderer = structlog.dev.ConsoleRenderer(event_key="message")
    else:
        log_renderer = structlog.processors.JSONRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            log_renderer,
        ],
    )

    root = logging.getLogger()
    while _installed_handlers:
        old_handler = _installed_handlers.pop()
        root.removeHandler(old_handler)
        old_handler.close()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    _installed_handlers.append(handler)

    if log_file is not None:
        file_formatter = structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.TimeStamper(fmt=LOG_FILE_TIME_FORMAT, utc=True, key="line_timestamp"),
                render_log_line,
            ],
        )
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(file_formatter)
        _installed_handlers.append(file_handler)

    for installed in _installed_handlers:
        root.addHandler(installed)
    root.setLevel(log_level)
