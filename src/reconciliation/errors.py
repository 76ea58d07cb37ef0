"""
Error types for holdings reconciliation.

Input errors are raised before any report record exists. Fetch errors are
raised at the cursor boundary. Everything else that escapes a reconciler is
caught once by the orchestrator and recorded on the report.
"""

from typing import Any, Dict, Optional


class ReconciliationError(Exception):
    """Base class for reconciliation failures."""


class TransientFetchError(ReconciliationError):
    """A page fetch failed for a reason that may clear up on retry."""

    def __init__(self, source: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.cause = cause


class FetchAbortError(ReconciliationError):
    """A page fetch failed permanently, or retries were exhausted."""

    def __init__(self, source: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.cause = cause


class RecordDoesNotExist(ReconciliationError):
    """No tracking record exists under the requested name."""


class ReportNameConflictError(ReconciliationError):
    """A tracking record already exists under the requested report name."""


def errorify(error: BaseException) -> Dict[str, Any]:
    """
    Summarize an exception for storage on a report record.

    Args:
        error: Exception to summarize

    Returns:
        Dictionary with the error type, message and (if any) chained cause
    """
    summary: Dict[str, Any] = {
        "type": type(error).__name__,
        "message": str(error),
    }

    cause = error.__cause__ or getattr(error, "cause", None)
    if cause is not None and cause is not error:
        summary["cause"] = errorify(cause)

    return summary


class DocumentNotFound(ReconciliationError):
    """No report document is stored under the requested key."""
