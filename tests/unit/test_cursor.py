"""
Unit tests for the sorted cursor.

Covers peek/shift semantics, page handling and the page-fetch retry policy.
"""

import pytest
from unittest.mock import Mock

from src.reconciliation.cursor import SequencePageSource, SortedCursor
from src.reconciliation.errors import FetchAbortError
from src.reconciliation.interfaces import FetchFailure, Page


class TestSortedCursor:
    """Test peek/shift behaviour."""

    @pytest.mark.asyncio
    async def test_peek_does_not_advance(self):
        cursor = SortedCursor(SequencePageSource(["a", "b"], page_size=1))

        assert await cursor.peek() == "a"
        assert await cursor.peek() == "a"
        assert await cursor.shift() == "a"
        assert await cursor.peek() == "b"

    @pytest.mark.asyncio
    async def test_exhausted_cursor_returns_none_forever(self):
        cursor = SortedCursor(SequencePageSource(["a"], page_size=5))

        assert await cursor.shift() == "a"
        assert await cursor.peek() is None
        assert await cursor.shift() is None
        assert await cursor.shift() is None

    @pytest.mark.asyncio
    async def test_empty_source(self):
        cursor = SortedCursor(SequencePageSource([]))

        assert await cursor.peek() is None
        assert await cursor.shift() is None
        assert cursor.pages_fetched == 1

    @pytest.mark.asyncio
    async def test_reads_across_page_boundaries(self):
        items = [f"key-{i:02d}" for i in range(7)]
        cursor = SortedCursor(SequencePageSource(items, page_size=3))

        seen = []
        while await cursor.peek() is not None:
            seen.append(await cursor.shift())

        assert seen == items
        assert cursor.pages_fetched == 3

    @pytest.mark.asyncio
    async def test_each_page_fetched_once(self, scripted_source):
        source = scripted_source([
            Page(items=["a", "b"], next_token="t1"),
            Page(items=["c"], next_token=None),
        ])
        cursor = SortedCursor(source)

        for _ in range(3):
            await cursor.peek()
            await cursor.shift()
        await cursor.peek()

        assert source.calls == [None, "t1"]

    @pytest.mark.asyncio
    async def test_skips_empty_intermediate_pages(self, scripted_source):
        source = scripted_source([
            Page(items=[], next_token="t1"),
            Page(items=[], next_token="t2"),
            Page(items=["a"], next_token=None),
        ])
        cursor = SortedCursor(source)

        assert await cursor.shift() == "a"
        assert await cursor.shift() is None
        assert source.calls == [None, "t1", "t2"]

    @pytest.mark.asyncio
    async def test_peek_key_uses_key_rule(self):
        cursor = SortedCursor(
            SequencePageSource([{"granuleId": "g1"}]),
            key=lambda item: item["granuleId"]
        )

        assert await cursor.peek_key() == "g1"
        await cursor.shift()
        assert await cursor.peek_key() is None

    def test_sequence_source_rejects_bad_page_size(self):
        with pytest.raises(ValueError):
            SequencePageSource([], page_size=0)


class TestCursorRetries:
    """Test the page-fetch retry policy."""

    @pytest.mark.asyncio
    async def test_retryable_failure_is_retried(self, scripted_source):
        source = scripted_source([
            FetchFailure(retryable=True, message="not consistent yet"),
            Page(items=["a"], next_token=None),
        ])
        metrics = Mock()
        cursor = SortedCursor(source, retries=2, max_backoff_seconds=0, metrics=metrics)

        assert await cursor.shift() == "a"
        assert len(source.calls) == 2
        metrics.record_fetch_retry.assert_called_once_with("scripted")
        metrics.record_page_fetched.assert_called_once_with("scripted")

    @pytest.mark.asyncio
    async def test_exhausted_retries_abort(self, scripted_source):
        source = scripted_source([FetchFailure(retryable=True, message="still lagging")])
        cursor = SortedCursor(source, retries=2, max_backoff_seconds=0)

        with pytest.raises(FetchAbortError) as exc_info:
            await cursor.peek()

        assert len(source.calls) == 3
        assert "still lagging" in str(exc_info.value)
        assert exc_info.value.source == "scripted"

    @pytest.mark.asyncio
    async def test_no_retries_by_default(self, scripted_source):
        source = scripted_source([
            FetchFailure(retryable=True, message="lagging"),
            Page(items=["a"], next_token=None),
        ])
        cursor = SortedCursor(source)

        with pytest.raises(FetchAbortError):
            await cursor.peek()
        assert len(source.calls) == 1

    @pytest.mark.asyncio
    async def test_fatal_failure_is_not_retried(self, scripted_source):
        cause = RuntimeError("access denied")
        source = scripted_source([
            FetchFailure(retryable=False, message="access denied", cause=cause),
            Page(items=["a"], next_token=None),
        ])
        cursor = SortedCursor(source, retries=5, max_backoff_seconds=0)

        with pytest.raises(FetchAbortError) as exc_info:
            await cursor.shift()

        assert len(source.calls) == 1
        assert exc_info.value.cause is cause

    @pytest.mark.asyncio
    async def test_retry_resumes_from_same_token(self, scripted_source):
        source = scripted_source([
            Page(items=["a"], next_token="t1"),
            FetchFailure(retryable=True, message="blip"),
            Page(items=["b"], next_token=None),
        ])
        cursor = SortedCursor(source, retries=1, max_backoff_seconds=0)

        assert await cursor.shift() == "a"
        assert await cursor.shift() == "b"
        assert source.calls == [None, "t1", "t1"]
