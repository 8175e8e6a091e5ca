"""
API tests for the chat analytics endpoints
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from chat_analytics.config import Settings, get_settings
from chat_analytics.exceptions import ChatSourceError
from chat_analytics.models.chat import Chat, Message
from chat_analytics.routers.dependencies import get_chat_source
from main import app
from tests.chat_factory import chat_record, message_record


class _FakeSource:
    def __init__(self, chats=None, messages=None, error: Exception = None):
        self.chats = [Chat.model_validate(c) for c in chats or []]
        self.messages = [Message.model_validate(m) for m in messages or []]
        self.error = error
        self.calls = []

    def fetch_chats(self, chat_type=None):
        self.calls.append(("chats", chat_type))
        if self.error:
            raise self.error
        return self.chats

    def fetch_messages(self, start, end, org_phone=None, limit=2000):
        self.calls.append(("messages", start, end, org_phone, limit))
        if self.error:
            raise self.error
        return self.messages


@pytest.fixture
def source():
    now = datetime.now(timezone.utc)
    return _FakeSource(
        chats=[
            chat_record(
                "waiting",
                latest_message=message_record(now - timedelta(hours=60), body="Still waiting"),
                custom_properties={"property-tier": "gold"},
            ),
            chat_record(
                "replied",
                chat_type="group",
                latest_message=message_record(now - timedelta(hours=3), from_me=True),
                custom_properties={"tier": "silver"},
            ),
            chat_record("gone", is_exited=True, latest_message=message_record(now - timedelta(hours=1))),
        ],
        messages=[
            message_record(datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc)),
            message_record(datetime(2024, 6, 3, 11, 0, tzinfo=timezone.utc), from_me=True),
        ],
    )


@pytest.fixture
def client(source):
    app.dependency_overrides[get_chat_source] = lambda: source
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:
    """Test suite for the health endpoint"""

    def test_health(self, client):
        """Test the service reports healthy"""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "chat-analytics-api"}

    def test_debug_flag_from_settings(self):
        """Test the app debug flag follows the DEBUG setting"""
        assert app.debug is get_settings().debug


class TestChatAnalyticsEndpoint:
    """Test suite for GET /api/chat-analytics"""

    def test_metrics_shape(self, client):
        """Test the response uses camelCase keys and a _debug block"""
        response = client.get("/api/chat-analytics")
        assert response.status_code == 200

        metrics = response.json()["metrics"]
        assert metrics["totalOpenChats"] == 2
        assert metrics["chatsWithDelayedResponse"] == 1
        assert metrics["openChatDetails"][0]["chatId"] == "waiting"
        assert metrics["openChatDetails"][0]["ageCalculationMethod"] == "latest_message"

        delayed = metrics["delayedResponseDetails"][0]
        assert delayed["chatId"] == "waiting"
        assert delayed["urgencyLevel"] == "medium"
        assert delayed["messagePreview"] == "Still waiting"

        debug = metrics["_debug"]
        assert debug["totalChatsFound"] == 3
        assert debug["policyName"] == "relaxed"
        assert debug["chatTypeDistribution"]["group"] == 1

    def test_filters_forwarded(self, client, source):
        """Test chat type is sent upstream and applied locally"""
        response = client.get("/api/chat-analytics", params={"chatType": "group", "policy": "strict"})
        assert response.status_code == 200

        metrics = response.json()["metrics"]
        assert [d["chatId"] for d in metrics["openChatDetails"]] == ["replied"]
        assert metrics["_debug"]["policyName"] == "strict"
        assert source.calls[0] == ("chats", "group")

    def test_unknown_policy(self, client):
        """Test an unknown policy is a client error"""
        response = client.get("/api/chat-analytics", params={"policy": "lenient"})
        assert response.status_code == 400
        assert "lenient" in response.json()["detail"]

    def test_invalid_chat_type(self, client):
        """Test an invalid chat type is rejected"""
        assert client.get("/api/chat-analytics", params={"chatType": "channel"}).status_code == 422

    def test_upstream_failure(self, client, source):
        """Test upstream failures map to 502 with no partial metrics"""
        source.error = ChatSourceError("Periskope returned HTTP 500 for /chats", status_code=500)

        response = client.get("/api/chat-analytics")

        assert response.status_code == 502
        assert "metrics" not in response.json()


class TestCustomPropertyEndpoints:
    """Test suite for the custom property endpoints"""

    def test_distribution(self, client):
        """Test value counts with debug information"""
        response = client.get("/api/custom-property-distribution", params={"propertyId": "property-tier"})
        assert response.status_code == 200

        body = response.json()
        assert {"name": "gold", "value": 1} in body["distribution"]
        assert {"name": "silver", "value": 1} in body["distribution"]
        assert body["_debug"]["totalChats"] == 3
        assert body["_debug"]["alternativePropertyId"] == "tier"

    def test_distribution_requires_property(self, client):
        """Test the property id is mandatory"""
        assert client.get("/api/custom-property-distribution").status_code == 400

    def test_values(self, client):
        """Test distinct property values"""
        response = client.get("/api/custom-property-values", params={"propertyId": "property-tier"})
        assert response.status_code == 200
        assert response.json() == {"propertyId": "property-tier", "values": ["gold", "silver"]}


class TestMessagesEndpoint:
    """Test suite for GET /api/messages"""

    def test_explicit_range(self, client, source):
        """Test messages and activity for an explicit range"""
        response = client.get("/api/messages", params={
            "startTime": "2024-06-03T00:00:00Z",
            "endTime": "2024-06-04T00:00:00Z",
            "orgPhone": "911852701495",
        })
        assert response.status_code == 200

        body = response.json()
        assert body["count"] == 2
        assert body["activity"]["total_messages"] == 2
        assert body["activity"]["average_reply_delay_hours"] == 1.0
        assert source.calls[0][3] == "911852701495"

    def test_named_period(self, client, source):
        """Test a named period is used when no times are given"""
        response = client.get("/api/messages", params={"period": "yesterday"})
        assert response.status_code == 200

        _, start, end, _, _ = source.calls[0]
        assert end - start < timedelta(days=1)

    def test_configured_page_limit(self, client, source):
        """Test the configured message page limit is used by default"""
        app.dependency_overrides[get_settings] = lambda: Settings(message_page_limit=500)

        response = client.get("/api/messages", params={"period": "today"})

        assert response.status_code == 200
        assert source.calls[0][4] == 500

    def test_explicit_limit_overrides_setting(self, client, source):
        """Test a limit query parameter wins over the configured one"""
        app.dependency_overrides[get_settings] = lambda: Settings(message_page_limit=500)

        client.get("/api/messages", params={"period": "today", "limit": 50})

        assert source.calls[0][4] == 50

    def test_invalid_range(self, client):
        """Test malformed and inverted ranges are rejected"""
        assert client.get("/api/messages", params={"startTime": "soon", "endTime": "later"}).status_code == 400
        assert client.get("/api/messages", params={
            "startTime": "2024-06-04T00:00:00Z",
            "endTime": "2024-06-03T00:00:00Z",
        }).status_code == 400

    def test_upstream_failure(self, client, source):
        """Test message fetch failures map to 502"""
        source.error = ChatSourceError("boom")
        response = client.get("/api/messages", params={"period": "today"})
        assert response.status_code == 502
