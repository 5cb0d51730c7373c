"""Structlog configuration with console and file output.

This module configures structlog for structured logging with:
- Console output (colored or plain)
- File output with rotation
- Learner/operation context injection via contextvars
- UUID identifiers rendered as strings
- JSON and key-value formatting options
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal
from uuid import UUID

import structlog
from structlog.types import EventDict, Processor

from progression.core.context import get_context


if TYPE_CHECKING:
    from progression.config.settings import Settings


def add_context_processor(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add operation context (operation_id, learner_id, course_id) to log events."""
    context = get_context()
    for key, value in context.items():
        event_dict.setdefault(key, value)
    return event_dict


def add_app_info_processor(
    app_name: str,
    app_version: str,
    environment: str,
) -> Processor:
    """Create a processor that adds application info to log events.

    Args:
        app_name: Application name.
        app_version: Application version.
        environment: Environment name (development, production, etc.).

    Returns:
        A processor function.
    """

    def processor(
        logger: logging.Logger,
        method_name: str,
        event_dict: EventDict,
    ) -> EventDict:
        event_dict["app"] = app_name
        event_dict["version"] = app_version
        event_dict["environment"] = environment
        return event_dict

    return processor


# Minimum length for partial masking (show first 2 and last 2 chars)
_MIN_MASK_LENGTH = 4

_SENSITIVE_KEYS = frozenset(
    {
        "password",
        "passwd",
        "secret",
        "token",
        "api_key",
        "authorization",
        "credentials",
    }
)


def filter_sensitive_data(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Mask store credentials and other secrets in log events."""

    def mask_value(key: str, value: Any) -> Any:
        if isinstance(value, str) and any(
            sensitive in key.lower() for sensitive in _SENSITIVE_KEYS
        ):
            if len(value) > _MIN_MASK_LENGTH:
                return value[:2] + "*" * (len(value) - _MIN_MASK_LENGTH) + value[-2:]
            return "***"
        if isinstance(value, dict):
            return {k: mask_value(k, v) for k, v in value.items()}
        return value

    return {k: mask_value(k, v) for k, v in event_dict.items()}


def stringify_ids(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Render UUID values (learner, course, lesson, exam IDs) as strings."""
    for key, value in event_dict.items():
        if isinstance(value, UUID):
            event_dict[key] = str(value)
    return event_dict


def setup_file_handler(
    log_dir: Path,
    log_file: str,
    max_bytes: int,
    backup_count: int,
    log_level: str,
) -> RotatingFileHandler:
    """Setup rotating file handler for logging."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / log_file

    handler = RotatingFileHandler(
        filename=str(log_path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(getattr(logging, log_level.upper()))
    return handler


def setup_console_handler(log_level: str) -> logging.StreamHandler:
    """Setup console handler for logging."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, log_level.upper()))
    return handler


def build_shared_processors(settings: "Settings") -> list[Processor]:
    """Processors applied to both structlog and foreign (stdlib) log records."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_context_processor,
        add_app_info_processor(
            settings.app_name, settings.app_version, settings.environment
        ),
        filter_sensitive_data,
        stringify_ids,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_include_caller_info:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.LINENO,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                ]
            )
        )

    return processors


def configure_structlog(
    settings: "Settings",
    log_dir: Path | str | None = None,
) -> None:
    """Configure structlog with console and (optionally) file output.

    Args:
        settings: Engine settings.
        log_dir: Directory for log files. Defaults to ``settings.log_dir``.
    """
    log_format: Literal["json", "console"] = settings.log_format
    log_level = settings.log_level

    if log_dir is None:
        log_dir = Path(settings.log_dir)
    elif isinstance(log_dir, str):
        log_dir = Path(log_dir)

    shared_processors = build_shared_processors(settings)

    if log_format == "json":
        final_processor: Processor = structlog.processors.JSONRenderer()
    else:
        final_processor = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    console_handler = setup_console_handler(log_level)
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=final_processor,
            foreign_pre_chain=shared_processors,
        )
    )
    root_logger.addHandler(console_handler)

    if settings.log_to_file:
        # Files are always JSON (for log analysis)
        for file_name, level in (
            (f"{settings.app_name}.log", log_level),
            (f"{settings.app_name}.error.log", "ERROR"),
        ):
            file_handler = setup_file_handler(
                log_dir=log_dir,
                log_file=file_name,
                max_bytes=settings.log_file_max_bytes,
                backup_count=settings.log_file_backup_count,
                log_level=level,
            )
            file_handler.setFormatter(
                structlog.stdlib.ProcessorFormatter(
                    processor=structlog.processors.JSONRenderer(),
                    foreign_pre_chain=shared_processors,
                )
            )
            root_logger.addHandler(file_handler)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Silence noisy loggers
    logging.getLogger("cassandra").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance."""
    return structlog.get_logger(name)
