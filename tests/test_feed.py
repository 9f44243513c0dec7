"""Tests for the trigger feed client."""

import json

import pytest
from structlog.testing import capture_logs

from streamcue.feed import ConnectionState, ReconnectingWebSocketClient, TriggerFeedClient

pytestmark = pytest.mark.asyncio


class FakeRegistry:
    def __init__(self):
        self.calls = []

    async def handle_redemption(self, reward_id, user, message=None):
        self.calls.append(("redemption", reward_id, user))
        return True

    async def handle_cheer(self, user, message=None):
        self.calls.append(("cheer", user))
        return True

    async def handle_command(self, word, user, message=None):
        self.calls.append(("command", word, user))
        return True


class FakeWebSocket:
    def __init__(self):
        self.sent = []
        self.closed = False

    async def send(self, data):
        self.sent.append(data)

    async def close(self):
        self.closed = True


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def client(registry, tracker):
    return TriggerFeedClient("ws://localhost:9000", registry, tracker)


class TestHandleMessage:
    async def test_redemption(self, client, registry):
        """Redemptions are routed by reward id with the viewer's input."""
        raw = json.dumps(
            {
                "type": "redemption",
                "reward_id": "reward-1",
                "user_login": "alice",
                "user_name": "Alice",
                "user_input": "hello",
            }
        )

        await client.handle_message(raw)

        kind, reward_id, user = registry.calls[0]
        assert (kind, reward_id) == ("redemption", "reward-1")
        assert (user.login, user.name, user.input) == ("alice", "Alice", "hello")

    async def test_cheer(self, client, registry):
        """Cheers carry the bit amount and message."""
        raw = json.dumps({"type": "cheer", "bits": 100, "user_login": "bob", "message": "Cheer100 hi"})

        await client.handle_message(raw)

        kind, user = registry.calls[0]
        assert kind == "cheer"
        assert (user.bits, user.input) == (100, "Cheer100 hi")

    async def test_command(self, client, registry):
        """Commands are split into a lowercased word and the rest of the line."""
        raw = json.dumps({"type": "command", "text": "!TTS  male voice", "user_login": "mod", "is_moderator": True})

        await client.handle_message(raw)

        kind, word, user = registry.calls[0]
        assert (kind, word) == ("command", "tts")
        assert user.input == "male voice"
        assert user.name == "mod"
        assert user.is_moderator is True

    async def test_command_without_prefix_ignored(self, client, registry):
        """Chat lines without the prefix are not commands."""
        await client.handle_message(json.dumps({"type": "command", "text": "tts hello"}))

        assert registry.calls == []

    async def test_invalid_messages_rejected(self, client, registry):
        """Malformed JSON and unknown types are counted and dropped."""
        with capture_logs() as logs:
            assert client.handle_message("{not json") is None
            assert client.handle_message(json.dumps({"type": "raid", "viewers": 5})) is None
            assert client.handle_message(json.dumps({"type": "cheer", "bits": -1})) is None

        assert client.messages_received == 3
        assert client.messages_rejected == 3
        assert registry.calls == []
        assert sum(entry["event"] == "Invalid feed message" for entry in logs) == 3

    async def test_handler_failure_contained(self, client, registry):
        """A failing registry call is logged, not raised."""

        async def broken(word, user, message=None):
            raise RuntimeError("boom")

        registry.handle_command = broken

        with capture_logs() as logs:
            await client.handle_message(json.dumps({"type": "command", "text": "!hi"}))

        assert any(entry["event"] == "Error boundary caught exception" for entry in logs)


class TestChat:
    async def test_send_when_connected(self, client):
        """Chat replies are sent as chat messages."""
        client.ws = FakeWebSocket()
        client.state = ConnectionState.CONNECTED

        await client.send_chat("hello chat")

        assert [json.loads(s) for s in client.ws.sent] == [{"type": "chat", "text": "hello chat"}]

    async def test_dropped_when_disconnected(self, client):
        """Without a connection the reply is dropped with a warning."""
        with capture_logs() as logs:
            await client.send_chat("nobody hears this")

        assert any(entry["event"] == "Chat message dropped, feed not connected" for entry in logs)

    async def test_disconnect_closes_socket(self, client):
        """Disconnecting closes the socket and stops reconnecting."""
        ws = FakeWebSocket()
        client.ws = ws
        client.state = ConnectionState.CONNECTED

        await client.disconnect()

        assert ws.closed is True
        assert client.ws is None
        assert client.get_status()["connection_state"] == "disconnected"


class FlakyClient(ReconnectingWebSocketClient):
    def __init__(self, results, **kwargs):
        super().__init__("ws://flaky", reconnect_delay_base=0.001, reconnect_delay_cap=0.004, **kwargs)
        self.results = list(results)
        self.attempts = 0

    async def _do_connect(self):
        self.attempts += 1
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def _do_disconnect(self):
        pass

    async def _do_listen(self):
        pass


class TestReconnect:
    async def test_retries_until_connected(self):
        """Failed attempts and exceptions are retried."""
        client = FlakyClient([False, OSError("refused"), True])

        assert await client.connect() is True
        assert client.attempts == 3
        assert client.state is ConnectionState.CONNECTED

    async def test_gives_up_after_max_attempts(self):
        """A bounded client fails after its attempts run out."""
        client = FlakyClient([False, False, True], max_reconnect_attempts=2)

        assert await client.connect() is False
        assert client.attempts == 2
        assert client.state is ConnectionState.FAILED
