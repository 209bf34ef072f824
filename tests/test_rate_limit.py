"""Tests for per-tool usage limits."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from starlette.requests import Request

from rynk.config import settings
from rynk.services import rate_limit


class _FakePool:
    def __init__(self, conn):
        self.conn = conn

    def acquire(self):
        pool = self

        class _Ctx:
            async def __aenter__(self):
                return pool.conn

            async def __aexit__(self, *exc):
                return False

        return _Ctx()


def make_request():
    return Request({"type": "http", "method": "POST", "path": "/", "headers": [], "query_string": b""})


def test_window_bounds_are_fixed_buckets():
    start, end = rate_limit.window_bounds(90_000, 24)
    assert start == 86_400
    assert end == 172_800


def test_count_in_window_ignores_older_bucket():
    assert rate_limit.count_in_window(None, 100) == 0
    assert rate_limit.count_in_window({"window_start": 50, "request_count": 4}, 100) == 0
    assert rate_limit.count_in_window({"window_start": 100, "request_count": 4}, 100) == 4


def test_unknown_tool_raises():
    with pytest.raises(ValueError):
        rate_limit.get_tool_config("nope")


def test_result_to_dict_serializes_reset():
    result = rate_limit.RateLimitResult(allowed=True, remaining=1, is_guest=False)
    assert result.to_dict()["reset_at"] is None


@pytest.mark.asyncio
async def test_user_without_credits_row_gets_default_allowance():
    conn = MagicMock()
    conn.fetchval = AsyncMock(return_value=None)
    with patch.object(rate_limit, "get_pool", AsyncMock(return_value=_FakePool(conn))):
        result = await rate_limit.get_tool_limit_info(make_request(), "summarizer", "user-1")
    assert result.allowed is True
    assert result.remaining == settings.tool_user_credits
    assert result.is_guest is False


@pytest.mark.asyncio
async def test_user_with_too_few_credits_is_denied():
    conn = MagicMock()
    conn.fetchval = AsyncMock(return_value=0)
    conn.execute = AsyncMock()
    with patch.object(rate_limit, "get_pool", AsyncMock(return_value=_FakePool(conn))):
        result = await rate_limit.check_and_consume_tool_limit(make_request(), "summarizer", "user-1")
    assert result.allowed is False
    assert result.error == "Insufficient credits"
    conn.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_guest_at_limit_is_denied_read_only():
    conn = MagicMock()
    conn.fetchrow = AsyncMock(return_value={"request_count": 5, "window_start": 2**40})
    with patch.object(rate_limit, "get_pool", AsyncMock(return_value=_FakePool(conn))):
        result = await rate_limit.get_tool_limit_info(make_request(), "summarizer")
    assert result.allowed is False
    assert result.remaining == 0
    assert result.is_guest is True
    assert result.reset_at is not None


def _guest_conn(record):
    conn = MagicMock()
    conn.fetchrow = AsyncMock(return_value=record)
    conn.execute = AsyncMock()
    return conn


def _frozen_clock(now):
    return patch.object(rate_limit, "time", MagicMock(time=MagicMock(return_value=now)))


@pytest.mark.asyncio
async def test_guest_use_within_window_increments_count():
    conn = _guest_conn({"request_count": 2, "window_start": 86_400})
    with patch.object(rate_limit, "get_pool", AsyncMock(return_value=_FakePool(conn))), _frozen_clock(90_000.0):
        result = await rate_limit.check_and_consume_tool_limit(make_request(), "summarizer")

    assert result.allowed is True
    assert result.remaining == 5 - 3
    assert result.reset_at.timestamp() == 172_800
    sql, ip_hash, tool_id, window_start, last_request = conn.execute.await_args.args
    assert "request_count + 1" in sql
    assert tool_id == "summarizer"
    assert window_start == 86_400
    assert last_request == 90_000


@pytest.mark.asyncio
async def test_guest_use_after_window_rolls_over_starts_fresh():
    conn = _guest_conn({"request_count": 5, "window_start": 0})
    with patch.object(rate_limit, "get_pool", AsyncMock(return_value=_FakePool(conn))), _frozen_clock(90_000.0):
        result = await rate_limit.check_and_consume_tool_limit(make_request(), "summarizer")

    assert result.allowed is True
    assert result.remaining == 4
    sql = conn.execute.await_args.args[0]
    assert "WHEN tool_guest_limits.window_start < $3 THEN 1" in sql


@pytest.mark.asyncio
async def test_guest_consume_at_limit_records_nothing():
    conn = _guest_conn({"request_count": 5, "window_start": 86_400})
    with patch.object(rate_limit, "get_pool", AsyncMock(return_value=_FakePool(conn))), _frozen_clock(90_000.0):
        result = await rate_limit.check_and_consume_tool_limit(make_request(), "summarizer")

    assert result.allowed is False
    assert result.remaining == 0
    assert result.error == "Daily limit exceeded"
    conn.execute.assert_not_awaited()
