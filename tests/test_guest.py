"""Tests for guest id extraction, IP hashing and credit checks."""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from starlette.requests import Request

from rynk.config import settings
from rynk.services import guest


def make_request(headers=None, query=b""):
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw_headers, "query_string": query})


class TestGuestIdExtraction:
    def test_bearer_header_wins(self):
        request = make_request(
            {"Authorization": "Bearer guest_header", "Cookie": "guest_id=guest_cookie"},
            b"guest_id=guest_query",
        )
        assert guest.get_guest_id_from_request(request) == "guest_header"

    def test_cookie_before_query(self):
        request = make_request({"Cookie": "guest_id=guest_cookie"}, b"guest_id=guest_query")
        assert guest.get_guest_id_from_request(request) == "guest_cookie"

    def test_query_param(self):
        assert guest.get_guest_id_from_request(make_request(query=b"guest_id=guest_query")) == "guest_query"

    def test_non_guest_bearer_falls_through(self):
        request = make_request({"Authorization": "Bearer access_123"}, b"guest_id=guest_query")
        assert guest.get_guest_id_from_request(request) == "guest_query"

    def test_values_without_prefix_are_ignored(self):
        request = make_request({"Cookie": "guest_id=abc"}, b"guest_id=xyz")
        assert guest.get_guest_id_from_request(request) is None


class TestClientIp:
    def test_first_forwarded_address(self):
        request = make_request({"X-Forwarded-For": "1.2.3.4, 10.0.0.1", "X-Real-IP": "5.6.7.8"})
        assert guest.get_client_ip(request) == "1.2.3.4"

    def test_real_ip(self):
        assert guest.get_client_ip(make_request({"X-Real-IP": "5.6.7.8"})) == "5.6.7.8"

    def test_default(self):
        assert guest.get_client_ip(make_request()) == "127.0.0.1"


def test_hash_ip_is_salted(monkeypatch):
    first = guest.hash_ip("1.2.3.4")
    assert first == guest.hash_ip("1.2.3.4")
    assert len(first) == 64
    monkeypatch.setattr(settings, "ip_hash_salt", "other-salt")
    assert guest.hash_ip("1.2.3.4") != first


def test_generated_ids_have_prefix():
    assert guest.generate_guest_id().startswith("guest_")


@pytest.mark.asyncio
async def test_check_guest_credits_without_session():
    with patch.object(guest, "get_guest_session", AsyncMock(return_value=None)):
        assert await guest.check_guest_credits("guest_x") == {"has_credits": False, "remaining": 0}


@pytest.mark.asyncio
async def test_check_guest_credits_with_session():
    with patch.object(guest, "get_guest_session", AsyncMock(return_value={"credits_remaining": 2})):
        assert await guest.check_guest_credits("guest_x") == {"has_credits": True, "remaining": 2}


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


def _session_conn(existing=None, used=0):
    """Connection whose INSERT echoes the new row back."""
    conn = MagicMock()

    async def fetchrow(sql, *args):
        if sql.strip().startswith("UPDATE"):
            return existing
        return {"guest_id": args[0], "ip_hash": args[1], "user_agent": args[2], "credits_remaining": args[3]}

    conn.fetchrow = AsyncMock(side_effect=fetchrow)
    conn.fetchval = AsyncMock(return_value=used)
    return conn


class TestGuestSessions:
    @pytest.mark.asyncio
    async def test_existing_session_is_reused(self):
        existing = {"guest_id": "guest_abc", "credits_remaining": 4}
        conn = _session_conn(existing=existing)
        with patch.object(guest, "get_pool", AsyncMock(return_value=_FakePool(conn))):
            session = await guest.get_or_create_guest_session(make_request({"Authorization": "Bearer guest_abc"}))
        assert session == existing
        conn.fetchval.assert_not_awaited()
        assert conn.fetchrow.await_count == 1

    @pytest.mark.asyncio
    async def test_new_session_gets_credits_left_for_its_ip(self):
        conn = _session_conn(used=2)
        request = make_request({"X-Forwarded-For": "1.2.3.4", "User-Agent": "pytest"})
        before = datetime.now(timezone.utc)
        with patch.object(guest, "get_pool", AsyncMock(return_value=_FakePool(conn))):
            session = await guest.get_or_create_guest_session(request)

        assert session["guest_id"].startswith("guest_")
        assert session["credits_remaining"] == settings.guest_credits_limit - 2
        assert session["user_agent"] == "pytest"
        _, ip_hash, window_start = conn.fetchval.await_args.args
        assert ip_hash == guest.hash_ip("1.2.3.4")
        expected = before - timedelta(days=settings.guest_ip_window_days)
        assert abs((window_start - expected).total_seconds()) < 5

    @pytest.mark.asyncio
    async def test_credits_never_go_below_zero(self):
        conn = _session_conn(used=settings.guest_credits_limit + 4)
        with patch.object(guest, "get_pool", AsyncMock(return_value=_FakePool(conn))):
            session = await guest.get_or_create_guest_session(make_request())
        assert session["credits_remaining"] == 0

    @pytest.mark.asyncio
    async def test_unknown_guest_id_is_kept_for_new_session(self):
        conn = _session_conn(existing=None)
        with patch.object(guest, "get_pool", AsyncMock(return_value=_FakePool(conn))):
            session = await guest.get_or_create_guest_session(make_request({"Cookie": "guest_id=guest_lost"}))
        assert session["guest_id"] == "guest_lost"
        assert session["credits_remaining"] == settings.guest_credits_limit

    @pytest.mark.asyncio
    async def test_decrement_without_credits_returns_false(self):
        conn = MagicMock()
        conn.fetchval = AsyncMock(return_value=None)
        with patch.object(guest, "get_pool", AsyncMock(return_value=_FakePool(conn))):
            assert await guest.decrement_guest_credits("guest_abc") is False
        assert "credits_remaining > 0" in conn.fetchval.await_args.args[0]

    @pytest.mark.asyncio
    async def test_decrement_of_last_credit_returns_true(self):
        conn = MagicMock()
        conn.fetchval = AsyncMock(return_value=0)
        with patch.object(guest, "get_pool", AsyncMock(return_value=_FakePool(conn))):
            assert await guest.decrement_guest_credits("guest_abc") is True
