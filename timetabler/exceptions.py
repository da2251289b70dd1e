"""Exceptions raised by the timetable scheduler."""

from __future__ import annotations
from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from timetabler.schemas import InfeasibleCourse


class SchedulerError(Exception):
    """Base exception for scheduler errors."""

    pass


class ConfigurationError(SchedulerError, ValueError):
    """Inputs or configuration make a run pointless; raised before any search work."""

    def __init__(self, message: str, subject: str | None = None):
        self.subject = subject
        if subject:
            message = f"{subject}: {message}"
        super().__init__(message)


class InfeasibleCourseError(SchedulerError):
    """Some courses kept unplaced sessions at the end of a run."""

    def __init__(self, courses: List["InfeasibleCourse"]):
        self.courses = courses
        details = ", ".join(
            f"{c.course_id} ({c.unplaced_sessions}/{c.required_sessions} unplaced)" for c in courses
        )
        super().__init__(f"Could not place every session of: {details}")
