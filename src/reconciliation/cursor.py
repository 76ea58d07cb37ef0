"""
Sorted Cursor for Holdings Reconciliation

Wraps one paginated listing behind a lazy peek/shift interface so that two
listings can be merge-joined without loading either of them into memory.
Only one page is buffered at a time. A cursor cannot be rewound; to restart,
build a new cursor over the same source.
"""

import logging
from collections import deque
from typing import Any, Callable, Deque, List, Optional, Sequence

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.reconciliation.errors import FetchAbortError, TransientFetchError
from src.reconciliation.interfaces import FetchFailure, Page, PageResult, PageSource

logger = logging.getLogger(__name__)


class SortedCursor:
    """
    Lazy, forward-only view over a sorted page source.

    ``peek`` and ``shift`` return None once the source is exhausted. Items are
    expected to arrive in non-decreasing order of ``key``; the cursor does not
    check this.
    """

    def __init__(
        self,
        source: PageSource,
        key: Optional[Callable[[Any], Any]] = None,
        retries: int = 0,
        max_backoff_seconds: float = 10.0,
        metrics=None
    ):
        """
        Initialize the cursor.

        Args:
            source: Page source to read from
            key: Extracts the comparison key from an item (identity if omitted)
            retries: Retries allowed for a retryable page-fetch failure
            max_backoff_seconds: Upper bound on the wait between retries
            metrics: Optional ReconciliationMetrics for page/retry counters
        """
        self.source = source
        self.key = key or (lambda item: item)
        self.retries = retries
        self.max_backoff_seconds = max_backoff_seconds
        self.metrics = metrics

        self._buffer: Deque[Any] = deque()
        self._next_token: Optional[Any] = None
        self._exhausted = False
        self.pages_fetched = 0

    async def peek(self) -> Optional[Any]:
        """Return the head item without advancing, or None when exhausted."""
        await self._fill()
        return self._buffer[0] if self._buffer else None

    async def shift(self) -> Optional[Any]:
        """Return the head item and advance past it, or None when exhausted."""
        await self._fill()
        if not self._buffer:
            return None
        return self._buffer.popleft()

    async def peek_key(self) -> Optional[Any]:
        """Return the key of the head item, or None when exhausted."""
        item = await self.peek()
        return None if item is None else self.key(item)

    async def _fill(self) -> None:
        # Empty intermediate pages are legal; keep going until an item or the end.
        while not self._buffer and not self._exhausted:
            page = await self._fetch_page()
            self._buffer.extend(page.items)
            self._next_token = page.next_token
            self._exhausted = page.is_last

    async def _fetch_page(self) -> Page:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_exponential(multiplier=0.5, max=self.max_backoff_seconds),
            retry=retry_if_exception_type(TransientFetchError),
            before_sleep=self._before_retry,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    page = await self._attempt_fetch()
        except TransientFetchError as e:
            logger.error(f"Giving up on {self.source.name} after {self.retries + 1} attempt(s): {e}")
            raise FetchAbortError(self.source.name, f"retries exhausted: {e}", cause=e) from e

        self.pages_fetched += 1
        if self.metrics is not None:
            self.metrics.record_page_fetched(self.source.name)

        logger.debug(
            f"Fetched page {self.pages_fetched} from {self.source.name}: "
            f"{len(page.items)} items, last={page.is_last}"
        )
        return page

    async def _attempt_fetch(self) -> Page:
        result: PageResult = await self.source.fetch_page(self._next_token)

        if isinstance(result, FetchFailure):
            if result.retryable:
                raise TransientFetchError(self.source.name, result.message, cause=result.cause)
            raise FetchAbortError(self.source.name, result.message, cause=result.cause)

        return result

    def _before_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Page fetch from {self.source.name} failed "
            f"(attempt {retry_state.attempt_number}/{self.retries + 1}), retrying: {error}"
        )
        if self.metrics is not None:
            self.metrics.record_fetch_retry(self.source.name)


class SequencePageSource(PageSource):
    """Serves an in-memory sequence as fixed-size pages."""

    def __init__(self, items: Sequence[Any], page_size: int = 100, name: str = "sequence"):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.items: List[Any] = list(items)
        self.page_size = page_size
        self.name = name

    async def fetch_page(self, token: Optional[Any]) -> PageResult:
        start = token or 0
        end = start + self.page_size
        next_token = end if end < len(self.items) else None
        return Page(items=self.items[start:end], next_token=next_token)
