"""
Unit tests for correlation module.
"""

import asyncio
import logging
import uuid

import pytest

from src.utils.correlation import (
    CorrelationContext,
    CorrelationIdFilter,
    generate_correlation_id,
    get_correlation_id,
    reset_correlation_id,
    set_correlation_id,
    setup_correlation_logging,
)


class TestCorrelationIdGeneration:
    """Test correlation ID generation functions."""

    def test_generate_correlation_id_returns_valid_uuid(self):
        correlation_id = generate_correlation_id()

        assert isinstance(correlation_id, str)
        assert str(uuid.UUID(correlation_id)) == correlation_id

    def test_generate_correlation_id_returns_unique_values(self):
        assert len({generate_correlation_id() for _ in range(3)}) == 3


class TestCorrelationIdContext:
    """Test correlation ID context management."""

    def test_get_correlation_id_returns_none_when_not_set(self):
        assert get_correlation_id() is None

    def test_set_and_reset(self):
        token = set_correlation_id("report-1")
        assert get_correlation_id() == "report-1"

        reset_correlation_id(token)
        assert get_correlation_id() is None

    @pytest.mark.parametrize("value", ["", None, 12345])
    def test_set_invalid_raises_error(self, value):
        with pytest.raises(ValueError, match="non-empty string"):
            set_correlation_id(value)

    def test_context_scopes_id(self):
        with CorrelationContext("outer") as outer:
            assert outer == "outer"
            with CorrelationContext("inner"):
                assert get_correlation_id() == "inner"
            assert get_correlation_id() == "outer"

        assert get_correlation_id() is None

    def test_context_generates_id(self):
        with CorrelationContext() as correlation_id:
            assert get_correlation_id() == correlation_id
            uuid.UUID(correlation_id)

    def test_context_restores_on_exception(self):
        with pytest.raises(RuntimeError):
            with CorrelationContext("failing"):
                raise RuntimeError("boom")

        assert get_correlation_id() is None

    @pytest.mark.asyncio
    async def test_id_is_visible_in_spawned_tasks(self):
        async def read():
            return get_correlation_id()

        with CorrelationContext("report-2"):
            results = await asyncio.gather(read(), asyncio.create_task(read()))

        assert results == ["report-2", "report-2"]


class TestCorrelationLogging:
    """Test the logging filter."""

    def make_record(self):
        return logging.LogRecord("test", logging.INFO, __file__, 1, "message", None, None)

    def test_filter_outside_context(self):
        record = self.make_record()

        assert CorrelationIdFilter().filter(record) is True
        assert record.correlation_id == "N/A"

    def test_filter_inside_context(self):
        record = self.make_record()

        with CorrelationContext("report-3"):
            CorrelationIdFilter().filter(record)

        assert record.correlation_id == "report-3"

    def test_setup_correlation_logging(self):
        handler = logging.NullHandler()
        setup_correlation_logging(handler)

        assert any(isinstance(f, CorrelationIdFilter) for f in handler.filters)
