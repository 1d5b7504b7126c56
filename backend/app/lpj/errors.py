from __future__ import annotations

from typing import Any, Dict, Optional


class LpjError(Exception):
    """Base class for report lifecycle errors."""

    # the LifecycleRun that raised, when one was in progress
    run: Optional[Any] = None


class SubmissionRejected(LpjError):
    """User-correctable problem with a submission. Nothing was written."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "field": self.field}


class ValidationError(SubmissionRejected):
    """A required field is missing or a value is malformed."""


class NormalizationError(SubmissionRejected):
    """The month period could not be normalized or lies in the future."""

    def __init__(self, message: str, raw_value: Optional[str] = None):
        super().__init__(message, field="month")
        self.raw_value = raw_value


class RenderError(LpjError):
    """The artifact could not be generated."""


class PersistenceError(LpjError):
    """The report store rejected a write or read."""


class ReportNotFound(LpjError):
    def __init__(self, report_id: str):
        super().__init__(f"report not found: {report_id}")
        self.report_id = report_id


class CleanupWarning(Warning):
    """Best-effort file removal failed after a commit. Logged, never raised."""

    def __init__(self, path: str, cause: BaseException):
        super().__init__(f"could not remove {path}: {cause}")
        self.path = path
        self.cause = cause
