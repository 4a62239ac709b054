"""Logging configuration for the Pulumi backend CLI (console + optional file)."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from structlog.stdlib import BoundLogger, LoggerFactory, ProcessorFormatter


def resolve_log_level(quiet: bool = False, verbose: bool = False, default: str = "INFO") -> str:
    """Map CLI output flags to a log level name. Quiet wins over verbose."""
    if quiet:
        return "ERROR"
    if verbose:
        return "DEBUG"
    return default.upper()


def setup_logging(
    log_level: str = "INFO",
    log_dir: Path | str | None = None,
    colors: bool | None = None,
    max_file_size_mb: int = 10,
) -> None:
    """Setup logging: structlog rendered to stderr, JSON to a file when log_dir is set.

    Args:
        log_level: Log level name
        log_dir: Directory for pulumi_backend.log (console only when None)
        colors: Force console colors on/off (defaults to TTY detection)
        max_file_size_mb: Max file size before truncation (no backup files kept)
    """
    log_level_num = getattr(logging, log_level.upper(), logging.INFO)

    # Clear any existing handlers to prevent duplicates
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level_num)

    if colors is None:
        colors = sys.stderr.isatty()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level_num)
    console_handler.setFormatter(
        ProcessorFormatter(processor=structlog.dev.ConsoleRenderer(colors=colors))
    )
    root_logger.addHandler(console_handler)

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path / "pulumi_backend.log",
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=0,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level_num)
        file_handler.setFormatter(ProcessorFormatter(processor=structlog.processors.JSONRenderer()))
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=False,
    )

    structlog.get_logger("pulumi_backend").debug(
        "Logging system initialized",
        log_level=log_level,
        log_dir=str(log_dir) if log_dir is not None else None,
    )


def get_logger(component: str) -> Any:
    """Get a logger bound to a component name."""
    return structlog.get_logger("pulumi_backend").bind(component=component)
