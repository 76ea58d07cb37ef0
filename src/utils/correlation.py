"""
Correlation IDs for Holdings Reconciliation

Every report run gets a correlation id so that the log lines of concurrent
bucket and collection tasks can be tied back to one report. The id lives in
a context variable, which asyncio copies into every task it spawns.
"""

import contextvars
import logging
import uuid
from typing import Optional

logger = logging.getLogger(__name__)

_correlation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'correlation_id',
    default=None
)


def generate_correlation_id() -> str:
    """
    Generate a new correlation ID using UUID4.

    Returns:
        String representation of a UUID4
    """
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID, or None if not set."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """
    Set the correlation ID in the current context.

    Args:
        correlation_id: Correlation ID to set

    Returns:
        Token that restores the previous value when passed to reset_correlation_id

    Raises:
        ValueError: If correlation_id is empty or not a string
    """
    if not correlation_id or not isinstance(correlation_id, str):
        raise ValueError("Correlation ID must be a non-empty string")

    return _correlation_id.set(correlation_id)


def reset_correlation_id(token: contextvars.Token) -> None:
    _correlation_id.reset(token)


class CorrelationContext:
    """
    Context manager that scopes a correlation ID to a block.

    Usage:
        with CorrelationContext(report_name) as correlation_id:
            await run_report()
    """

    def __init__(self, correlation_id: Optional[str] = None):
        """
        Initialize correlation context.

        Args:
            correlation_id: ID to use; a new one is generated if omitted
        """
        self.correlation_id = correlation_id or generate_correlation_id()
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> str:
        self._token = set_correlation_id(self.correlation_id)
        logger.debug(f"Entered correlation context: {self.correlation_id}")
        return self.correlation_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        reset_correlation_id(self._token)
        self._token = None


class CorrelationIdFilter(logging.Filter):
    """Adds ``correlation_id`` to every log record ("N/A" outside a context)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "N/A"
        return True


def setup_correlation_logging(handler: logging.Handler) -> None:
    """
    Attach the correlation ID filter to a handler.

    Filters on a handler see records from every logger that propagates to
    it, so this is normally applied to the root logger's handlers.

    Args:
        handler: Handler to configure
    """
    handler.addFilter(CorrelationIdFilter())
