"""
Logging for filesidecar.

Every module logs through a child of the ``filesidecar`` logger obtained
from ``get_logger``. The CLI calls ``setup_logging_from_config`` once the
configuration is loaded; library users who never configure anything get a
plain stderr handler at INFO on first use.

Console output uses Rich by default. An optional file handler writes one
parseable line per record.
"""

import logging
import sys
import threading
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "filesidecar"

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class FileFormatter(logging.Formatter):
    """``2024-01-01 12:00:00 [INFO    ] filesidecar.reconciler: message``"""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s", datefmt=DATE_FORMAT)


class ConsoleFormatter(logging.Formatter):
    """Plain console lines; errors also carry the emitting file and line."""

    def __init__(self) -> None:
        super().__init__(datefmt=DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        prefix = f"{record.levelname}: {self.formatTime(record, self.datefmt)}"
        if record.levelno >= logging.ERROR:
            prefix += f" - {Path(record.pathname).name}:{record.lineno}"
        line = f"{prefix} - {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _parse_level(level: str | int) -> int:
    """Level name or number to a logging constant; unknown names mean INFO."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def _console_handler(level: int, use_rich: bool, console: Console | None, format_string: str | None) -> logging.Handler:
    if use_rich:
        return RichHandler(
            level=level,
            console=console or Console(stderr=True),
            markup=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
            omit_repeated_times=False,
        )
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(format_string) if format_string else ConsoleFormatter())
    return handler


def _file_handler(log_file: str | Path, file_mode: str) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, mode=file_mode)
    # The logger's own level already filters
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(FileFormatter())
    return handler


def setup_logging(
    level: str | int = logging.INFO,
    log_file: str | Path | None = None,
    format_string: str | None = None,
    file_mode: str = "a",
    console: Console | None = None,
    console_enabled: bool = True,
    use_rich: bool = True,
) -> logging.Logger:
    """
    (Re)configure the ``filesidecar`` logger.

    Handlers previously installed on it are replaced; the root logger and
    other libraries' loggers are left alone.

    Args:
        level: Level name (DEBUG, INFO, ...) or number
        log_file: Also write to this file when given
        format_string: Format for the plain console handler
        file_mode: 'a' to append to ``log_file``, 'w' to truncate it
        console: Rich Console to log to (default: a new stderr console)
        console_enabled: Install a console handler at all
        use_rich: Rich console handler instead of the plain one

    Returns:
        The ``filesidecar`` logger
    """
    global _configured

    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    level_int = _parse_level(level)
    logger.setLevel(level_int)
    if console_enabled:
        logger.addHandler(_console_handler(level_int, use_rich, console, format_string))
    if log_file:
        logger.addHandler(_file_handler(log_file, file_mode))

    _configured = True
    return logger


def setup_logging_from_config(config: dict[str, Any], console: Console | None = None) -> logging.Logger:
    """
    Configure logging from the ``logging`` section of the sidecar config::

        logging:
          level: INFO
          console_type: rich            # or "plain"
          console_enabled: true
          format: "%(levelname)s %(message)s"   # plain console only
          file: logs/filesidecar.log    # omitted = console only
          file_enabled: true
          file_mode: a
    """
    section = config.get("logging") or {}
    log_file = section.get("file") if section.get("file_enabled", True) else None
    return setup_logging(
        level=section.get("level", logging.INFO),
        log_file=log_file,
        format_string=section.get("format"),
        file_mode=section.get("file_mode", "a"),
        console=console,
        console_enabled=section.get("console_enabled", True),
        use_rich=section.get("console_type", "rich") == "rich",
    )


_configured = False
_configure_lock = threading.Lock()


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Logger for ``name``, installing default handlers on first use.

    Defaults are a plain stderr handler at INFO, unless something already
    attached handlers to the ``filesidecar`` logger.
    """
    global _configured

    if not _configured:
        with _configure_lock:
            if not _configured:
                if logging.getLogger(ROOT_LOGGER).handlers:
                    _configured = True
                else:
                    setup_logging(use_rich=False)
    return logging.getLogger(name)
