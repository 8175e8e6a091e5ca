"""
Unit tests for the Periskope API client
"""
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List

import pytest
import requests

from chat_analytics.exceptions import ChatSourceError, RateLimitedError
from chat_analytics.models.chat import ChatType
from chat_analytics.services.periskope_client import PeriskopeClient
from tests.chat_factory import NOW, chat_record, message_record


class _FakeResponse:
    def __init__(self, payload: Any, status_code: int = 200):
        self._payload = payload
        self.status_code = status_code

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _FakeSession:
    """Replays queued responses, or answers through a responder callable"""

    def __init__(self, responses: List[_FakeResponse] = None, responder: Callable = None):
        self._responses = list(responses or [])
        self._responder = responder
        self._lock = threading.Lock()
        self.requests: List[Dict[str, Any]] = []

    def get(self, url: str, **kwargs: Any) -> _FakeResponse:
        with self._lock:
            self.requests.append({"url": url, **kwargs})
            if self._responder is not None:
                return self._responder(url, kwargs.get("params", {}))
            if not self._responses:
                raise AssertionError("no more responses queued")
            return self._responses.pop(0)


def _client(session, **kwargs) -> PeriskopeClient:
    sleeps: List[float] = []
    client = PeriskopeClient(
        api_key="secret-token",
        phone="911852701495",
        base_url="https://api.example.com/v1/",
        session=session,
        sleep=sleeps.append,
        **kwargs,
    )
    client.sleeps = sleeps
    return client


class TestFetchChats:
    """Test suite for chat pagination"""

    def test_single_short_page(self):
        """Test a page shorter than the page size ends pagination"""
        session = _FakeSession([_FakeResponse({"chats": [chat_record("a"), chat_record("b")]})])
        chats = _client(session, page_size=10).fetch_chats()

        assert [c.chat_id for c in chats] == ["a", "b"]
        request = session.requests[0]
        assert request["url"] == "https://api.example.com/v1/chats"
        assert request["params"] == {"limit": 10, "offset": 0}
        assert request["headers"]["Authorization"] == "Bearer secret-token"
        assert request["headers"]["x-phone"] == "911852701495"

    def test_offsets_and_dedupe(self):
        """Test offsets advance by page size and duplicates are merged"""
        newer = chat_record("b", updated_at=NOW, chat_name="newer")
        session = _FakeSession([
            _FakeResponse({"chats": [chat_record("a"), chat_record("b")]}),
            _FakeResponse({"chats": [newer, chat_record("c")]}),
            _FakeResponse({"chats": []}),
        ])

        chats = _client(session, page_size=2).fetch_chats()

        assert sorted(c.chat_id for c in chats) == ["a", "b", "c"]
        assert next(c for c in chats if c.chat_id == "b").chat_name == "newer"
        assert [r["params"]["offset"] for r in session.requests] == [0, 2, 4]

    def test_max_pages_cap(self):
        """Test pagination stops at the page limit"""
        session = _FakeSession(responder=lambda url, params: _FakeResponse(
            {"chats": [chat_record(f"chat-{params['offset']}")]}
        ))

        chats = _client(session, page_size=1, max_pages=3).fetch_chats()

        assert len(session.requests) == 3
        assert len(chats) == 3

    def test_chat_type_param(self):
        """Test the chat type filter is sent upstream"""
        session = _FakeSession([_FakeResponse({"chats": []})])
        _client(session).fetch_chats(chat_type=ChatType.GROUP)
        assert session.requests[0]["params"]["chat_type"] == "group"

    @pytest.mark.parametrize("payload", [
        {"data": {"chats": [{"chat_id": "a", "chat_type": "user"}]}},
        {"data": [{"chat_id": "a", "chat_type": "user"}]},
        [{"chat_id": "a", "chat_type": "user"}],
    ])
    def test_response_shapes(self, payload):
        """Test the record list is found in each known response shape"""
        session = _FakeSession([_FakeResponse(payload)])
        assert [c.chat_id for c in _client(session).fetch_chats()] == ["a"]

    def test_malformed_records_dropped(self):
        """Test records failing validation are skipped"""
        session = _FakeSession([_FakeResponse({"chats": [
            {"chat_id": "bad", "chat_type": "channel"},
            chat_record("good"),
        ]})])
        assert [c.chat_id for c in _client(session).fetch_chats()] == ["good"]


class TestErrorHandling:
    """Test suite for upstream failures"""

    def test_retry_on_429(self):
        """Test 429 responses are retried with exponential backoff"""
        session = _FakeSession([
            _FakeResponse({}, status_code=429),
            _FakeResponse({}, status_code=429),
            _FakeResponse({"chats": [chat_record("a")]}),
        ])
        client = _client(session, backoff_seconds=1.0)

        chats = client.fetch_chats()

        assert len(chats) == 1
        assert client.sleeps == [1.0, 2.0]

    def test_rate_limited_after_attempts(self):
        """Test persistent 429 raises after the last attempt"""
        session = _FakeSession([_FakeResponse({}, status_code=429)] * 3)
        client = _client(session, max_attempts=3)

        with pytest.raises(RateLimitedError) as exc_info:
            client.fetch_chats()

        assert exc_info.value.status_code == 429
        assert len(session.requests) == 3
        assert len(client.sleeps) == 2

    def test_http_error(self):
        """Test other HTTP errors are not retried"""
        session = _FakeSession([_FakeResponse({}, status_code=500)])

        with pytest.raises(ChatSourceError) as exc_info:
            _client(session).fetch_chats()

        assert exc_info.value.status_code == 500
        assert len(session.requests) == 1

    def test_error_payload(self):
        """Test an error field in a 200 response is a failure"""
        session = _FakeSession([_FakeResponse({"error": "invalid api key"})])
        with pytest.raises(ChatSourceError, match="invalid api key"):
            _client(session).fetch_chats()

    def test_invalid_json(self):
        """Test an unparseable body is a failure"""
        session = _FakeSession([_FakeResponse(ValueError("no json"))])
        with pytest.raises(ChatSourceError):
            _client(session).fetch_chats()

    def test_connection_error(self):
        """Test transport errors surface as ChatSourceError"""
        class _BrokenSession:
            def get(self, url, **kwargs):
                raise requests.ConnectionError("connection refused")

        with pytest.raises(ChatSourceError, match="connection refused"):
            _client(_BrokenSession()).fetch_chats()

    def test_failure_mid_pagination_is_not_partial(self):
        """Test a failure on a later page fails the whole fetch"""
        session = _FakeSession([
            _FakeResponse({"chats": [chat_record("a"), chat_record("b")]}),
            _FakeResponse({}, status_code=503),
        ])
        with pytest.raises(ChatSourceError):
            _client(session, page_size=2).fetch_chats()


class TestFetchMessages:
    """Test suite for windowed message fetching"""

    def test_daily_windows(self):
        """Test ranges are split into day-sized windows"""
        start = datetime(2024, 6, 1, 6, 0, tzinfo=timezone.utc)
        windows = PeriskopeClient.daily_windows(start, start + timedelta(days=2, hours=3))

        assert len(windows) == 3
        assert windows[0] == (start, start + timedelta(days=1))
        assert windows[-1][1] == start + timedelta(days=2, hours=3)

    def test_empty_range(self):
        """Test an empty range has no windows"""
        assert PeriskopeClient.daily_windows(NOW, NOW) == []

    def test_cursor_pagination(self):
        """Test next_cursor is followed within a window"""
        start = NOW - timedelta(hours=6)
        session = _FakeSession([
            _FakeResponse({"data": {"messages": [message_record(start)], "next_cursor": "c2"}}),
            _FakeResponse({"data": {"messages": [message_record(start + timedelta(hours=1))], "next_cursor": None}}),
        ])

        messages = _client(session, concurrency=1).fetch_messages(start, NOW, org_phone="911852701495")

        assert len(messages) == 2
        assert "cursor" not in session.requests[0]["params"]
        assert session.requests[1]["params"]["cursor"] == "c2"
        assert session.requests[0]["params"]["org_phone"] == "911852701495"
        assert session.requests[0]["url"].endswith("/chats/messages")

    def test_concurrent_windows_keep_order(self):
        """Test messages from parallel windows come back in window order"""
        start = NOW - timedelta(days=3)

        def responder(url, params):
            window_start = datetime.fromisoformat(params["start_time"])
            return _FakeResponse({"messages": [message_record(window_start, message_id=params["start_time"])]})

        messages = _client(_FakeSession(responder=responder), concurrency=2).fetch_messages(start, NOW)

        assert len(messages) == 3
        assert [m.timestamp for m in messages] == sorted(m.timestamp for m in messages)

    def test_window_failure_fails_fetch(self):
        """Test a failing window fails the whole message fetch"""
        def responder(url, params):
            return _FakeResponse({}, status_code=500)

        with pytest.raises(ChatSourceError):
            _client(_FakeSession(responder=responder), concurrency=2).fetch_messages(NOW - timedelta(days=2), NOW)
