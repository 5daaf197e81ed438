"""
ScriptVision Logging Configuration

All loggers hang off the "scriptvision" root logger. Log lines about a
generation run carry the project id as a "[project]" prefix through
ProjectLogAdapter, so one run can be followed across the planner, the
worker and the stream.
"""

import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Any, List, MutableMapping, Optional, Tuple


class LogLevel(Enum):
    """Log level enumeration."""
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL


DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
VERBOSE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(funcName)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ROOT_LOGGER_NAME = "scriptvision"

# uvicorn's own loggers, routed through our handlers when the server runs
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

_initialized: bool = False
_handlers: List[logging.Handler] = []


def _build_handlers(
    level: LogLevel,
    log_file: Optional[Path],
    verbose: bool,
    console_output: bool,
) -> List[logging.Handler]:
    formatter = logging.Formatter(VERBOSE_FORMAT if verbose else DEFAULT_FORMAT, datefmt=DATE_FORMAT)
    handlers: List[logging.Handler] = []

    if console_output:
        handlers.append(logging.StreamHandler(sys.stdout))

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    for handler in handlers:
        handler.setLevel(level.value)
        handler.setFormatter(formatter)
    return handlers


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    log_file: Optional[Path] = None,
    verbose: bool = False,
    console_output: bool = True
) -> None:
    """
    Configure the scriptvision root logger.

    Calling it again replaces the previous handlers.

    Args:
        level: Minimum log level to capture
        log_file: Optional path to a log file
        verbose: Include line numbers and function names
        console_output: Log to stdout
    """
    global _initialized, _handlers

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level.value)
    root_logger.handlers.clear()

    _handlers = _build_handlers(level, log_file, verbose, console_output)
    for handler in _handlers:
        root_logger.addHandler(handler)

    _initialized = True
    root_logger.info(f"Logging initialized - Level: {level.name}, Verbose: {verbose}")


def route_server_logs(level: LogLevel = LogLevel.WARNING) -> None:
    """Send uvicorn's loggers through the scriptvision handlers and format."""
    if not _initialized:
        setup_logging()
    for name in SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers = list(_handlers)
        server_logger.setLevel(level.value)
        server_logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """
    Get a namespaced logger, e.g. get_logger("pipelines.worker").

    Logging is set up with defaults on first use.
    """
    if not _initialized:
        setup_logging()

    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


class ProjectLogAdapter(logging.LoggerAdapter):
    """Prefixes every message with the project id of the run being logged."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['project_id']}] {msg}", kwargs


def project_logger(logger: logging.Logger, project_id: Optional[str]) -> ProjectLogAdapter:
    return ProjectLogAdapter(logger, {"project_id": project_id or "-"})
