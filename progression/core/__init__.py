# Core infrastructure
from progression.core.context import (
    LearnerContext,
    bind_learner_context,
    clear_context,
    get_context,
    get_correlation_id,
    get_course_id,
    get_learner_id,
    get_operation_id,
    set_correlation_id,
)
from progression.core.logging import configure_structlog, get_logger


__all__ = [
    "LearnerContext",
    "bind_learner_context",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_correlation_id",
    "get_course_id",
    "get_learner_id",
    "get_logger",
    "get_operation_id",
    "set_correlation_id",
]
