"""Course progression and completion engine.

Tracks learner advancement through sectioned courses, gates lesson
completion on videos, readings and exams, and finalizes enrollments.
Entry point: ``progression.progress.service.ProgressService`` (or
``progression.bootstrap.create_progress_service`` for a wired instance).
"""

__version__ = "0.1.0"
