"""Test MCP connection state and the push channel."""
import pytest

from mcp_social.channels import (
    ConnectionRegistry, ConnectionState, event_stream, sse_frame
)
from mcp_social.errors import ChannelError


@pytest.fixture
def registry():
    return ConnectionRegistry()


class TestConnectionState:
    """UNINITIALIZED -> READY -> STREAMING -> CLOSED."""

    def test_unknown_session_is_uninitialized(self, registry):
        assert registry.state(None) == ConnectionState.UNINITIALIZED
        assert registry.state("nope") == ConnectionState.UNINITIALIZED
        assert not registry.accepts_calls("nope")

    def test_lifecycle(self, registry):
        connection = registry.initialize()
        session_id = connection.session_id

        assert registry.state(session_id) == ConnectionState.READY
        assert registry.accepts_calls(session_id)

        registry.open_stream(session_id)
        assert registry.state(session_id) == ConnectionState.STREAMING
        assert registry.accepts_calls(session_id)

        registry.close(session_id)
        assert connection.state == ConnectionState.CLOSED
        assert registry.get(session_id) is None
        assert not registry.accepts_calls(session_id)

    def test_open_stream_unknown_session(self, registry):
        with pytest.raises(ChannelError) as exc:
            registry.open_stream("nope")
        assert exc.value.status_code == 400

    def test_second_stream_rejected(self, registry):
        session_id = registry.initialize().session_id
        registry.open_stream(session_id)

        with pytest.raises(ChannelError) as exc:
            registry.open_stream(session_id)
        assert exc.value.status_code == 409

    def test_close_unknown_is_noop(self, registry):
        registry.close("nope")

    def test_publish_requires_stream(self, registry):
        session_id = registry.initialize().session_id
        assert registry.publish(session_id, {"jsonrpc": "2.0"}) is False

        connection = registry.open_stream(session_id)
        assert registry.publish(session_id, {"jsonrpc": "2.0", "method": "ping"}) is True
        assert connection.queue.qsize() == 1


def test_sse_frame():
    assert sse_frame({"a": 1}) == 'event: message\ndata: {"a": 1}\n\n'


@pytest.mark.asyncio
class TestEventStream:
    """Test SSE frames and teardown."""

    async def test_delivers_published_messages(self, registry):
        connection = registry.initialize()
        registry.open_stream(connection.session_id)
        registry.publish(connection.session_id, {"jsonrpc": "2.0", "method": "ping"})

        checks = iter([False, True])

        async def is_disconnected():
            return next(checks)

        frames = [f async for f in event_stream(registry, connection, is_disconnected, 0.01)]

        assert frames == [sse_frame({"jsonrpc": "2.0", "method": "ping"})]
        assert registry.get(connection.session_id) is None

    async def test_keepalive_when_idle(self, registry):
        connection = registry.initialize()
        registry.open_stream(connection.session_id)

        checks = iter([False, False, True])

        async def is_disconnected():
            return next(checks)

        frames = [f async for f in event_stream(registry, connection, is_disconnected, 0.01)]

        assert frames == [": keepalive\n\n", ": keepalive\n\n"]
        assert connection.state == ConnectionState.CLOSED

    async def test_disconnect_discards_connection(self, registry):
        connection = registry.initialize()
        registry.open_stream(connection.session_id)

        async def is_disconnected():
            return True

        frames = [f async for f in event_stream(registry, connection, is_disconnected, 0.01)]

        assert frames == []
        assert registry.state(connection.session_id) == ConnectionState.UNINITIALIZED
