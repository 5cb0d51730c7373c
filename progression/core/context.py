"""Operation context management using contextvars.

Every engine operation runs inside a learner context so that log entries
emitted anywhere below it (store adapter, ledger, finalizer) carry the
learner, course and operation identifiers without passing them explicitly.
"""

from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4


# Context variables for operation tracking
operation_id_var: ContextVar[str] = ContextVar("operation_id", default="")
learner_id_var: ContextVar[str | None] = ContextVar("learner_id", default=None)
course_id_var: ContextVar[str | None] = ContextVar("course_id", default=None)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def generate_operation_id() -> str:
    """Generate a new unique operation ID."""
    return str(uuid4())


def get_operation_id() -> str:
    """Get the current operation ID."""
    return operation_id_var.get()


def get_learner_id() -> str | None:
    """Get the current learner ID."""
    return learner_id_var.get()


def get_course_id() -> str | None:
    """Get the current course ID."""
    return course_id_var.get()


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context.

    Args:
        correlation_id: ID supplied by the hosting application (e.g. its request ID).
    """
    correlation_id_var.set(correlation_id)


def get_context() -> dict[str, Any]:
    """Get all context variables as a dictionary.

    Returns:
        Dictionary with operation_id, learner_id, course_id and correlation_id
        (only the ones that are set).
    """
    context: dict[str, Any] = {}

    operation_id = get_operation_id()
    if operation_id:
        context["operation_id"] = operation_id

    learner_id = get_learner_id()
    if learner_id:
        context["learner_id"] = learner_id

    course_id = get_course_id()
    if course_id:
        context["course_id"] = course_id

    correlation_id = get_correlation_id()
    if correlation_id:
        context["correlation_id"] = correlation_id

    return context


def clear_context() -> None:
    """Clear all context variables."""
    operation_id_var.set("")
    learner_id_var.set(None)
    course_id_var.set(None)
    correlation_id_var.set(None)


class LearnerContext:
    """Context manager scoping one engine operation to a learner.

    Usage:
        with LearnerContext(learner_id=learner_id, course_id=course_id):
            log.info("lesson_completed")  # includes learner_id, course_id
    """

    def __init__(
        self,
        learner_id: str | UUID | None = None,
        course_id: str | UUID | None = None,
        operation_id: str | None = None,
    ) -> None:
        self.learner_id = learner_id
        self.course_id = course_id
        self.operation_id = operation_id
        self._tokens: dict[ContextVar, Any] = {}

    def __enter__(self) -> "LearnerContext":
        """Enter context and set variables."""
        # Nested operations (reading -> lesson -> course) keep the outer ID.
        if not operation_id_var.get() or self.operation_id is not None:
            self._tokens[operation_id_var] = operation_id_var.set(
                self.operation_id or generate_operation_id()
            )

        if self.learner_id is not None:
            self._tokens[learner_id_var] = learner_id_var.set(str(self.learner_id))

        if self.course_id is not None:
            self._tokens[course_id_var] = course_id_var.set(str(self.course_id))

        return self

    def __exit__(self, *_: object) -> None:
        """Exit context and restore previous values."""
        for var, token in self._tokens.items():
            var.reset(token)
        self._tokens.clear()


def bind_learner_context(
    learner_id: str | UUID | None,
    course_id: str | UUID | None = None,
) -> LearnerContext:
    """Shorthand used by the engine entry points."""
    return LearnerContext(learner_id=learner_id, course_id=course_id)
