"""Tests for learner operation context."""

from uuid import uuid4

import pytest
import structlog

from progression.core.context import (
    LearnerContext,
    bind_learner_context,
    clear_context,
    get_context,
    get_course_id,
    get_learner_id,
    get_operation_id,
    set_correlation_id,
)
from progression.core.logging import add_context_processor


@pytest.fixture(autouse=True)
def clean_context():
    clear_context()
    yield
    clear_context()


class TestLearnerContext:
    def test_sets_and_restores(self):
        learner_id, course_id = uuid4(), uuid4()

        with bind_learner_context(learner_id, course_id):
            assert get_learner_id() == str(learner_id)
            assert get_course_id() == str(course_id)
            assert get_operation_id()

        assert get_learner_id() is None
        assert get_course_id() is None
        assert get_operation_id() == ""

    def test_nested_context_keeps_outer_operation_id(self):
        """Should reuse the outer operation ID and restore the outer course."""
        outer_course, inner_course = uuid4(), uuid4()

        with bind_learner_context(uuid4(), outer_course):
            outer_operation = get_operation_id()
            with bind_learner_context(None, inner_course):
                assert get_operation_id() == outer_operation
                assert get_course_id() == str(inner_course)
            assert get_course_id() == str(outer_course)

    def test_explicit_operation_id(self):
        with LearnerContext(operation_id="op-1"):
            assert get_operation_id() == "op-1"

    def test_get_context_only_includes_set_values(self):
        assert get_context() == {}

        set_correlation_id("req-42")
        with LearnerContext(learner_id="learner-1", operation_id="op-2"):
            context = get_context()

        assert context == {
            "operation_id": "op-2",
            "learner_id": "learner-1",
            "correlation_id": "req-42",
        }


class TestContextProcessor:
    def test_adds_context_without_overriding_event_fields(self):
        with LearnerContext(learner_id="learner-1", course_id="course-1"):
            event = add_context_processor(
                structlog.get_logger(), "info", {"event": "x", "course_id": "explicit"}
            )

        assert event["learner_id"] == "learner-1"
        assert event["course_id"] == "explicit"
