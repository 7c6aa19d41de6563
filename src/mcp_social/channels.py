"""MCP connection state and push channels.

A logical connection moves UNINITIALIZED -> READY (initialize) ->
STREAMING (push channel opened) -> CLOSED (push channel disconnected).
Closing discards the connection record only; identity sessions are kept.
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional

from .errors import ChannelError
from .models import utc_now
from .security import new_token
from .sessions import MemorySessionStore, SessionStore


logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    STREAMING = "streaming"
    CLOSED = "closed"


@dataclass
class Connection:
    session_id: str
    state: ConnectionState = ConnectionState.READY
    client_info: dict = field(default_factory=dict)
    capabilities: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    queue: Optional[asyncio.Queue] = None


class ConnectionRegistry:
    """Handshaken connections keyed by Mcp-Session-Id."""

    def __init__(self, store: SessionStore[Connection] = None):
        self.store = store if store is not None else MemorySessionStore()

    def initialize(self, client_info: dict = None, capabilities: dict = None) -> Connection:
        """Handshake: every call issues a new, independent session."""
        session_id = new_token()
        while self.store.get(session_id) is not None:
            session_id = new_token()
        connection = Connection(
            session_id=session_id,
            client_info=client_info or {},
            capabilities=capabilities or {},
        )
        self.store.set(session_id, connection)
        logger.info(f"MCP session initialized: {session_id}")
        return connection

    def get(self, session_id: Optional[str]) -> Optional[Connection]:
        if not session_id:
            return None
        return self.store.get(session_id)

    def state(self, session_id: Optional[str]) -> ConnectionState:
        connection = self.get(session_id)
        return connection.state if connection else ConnectionState.UNINITIALIZED

    def accepts_calls(self, session_id: Optional[str]) -> bool:
        return self.state(session_id) in (ConnectionState.READY, ConnectionState.STREAMING)

    def open_stream(self, session_id: Optional[str]) -> Connection:
        connection = self.get(session_id)
        if connection is None:
            raise ChannelError(400, "Invalid or missing Mcp-Session-Id header")
        if connection.state == ConnectionState.STREAMING:
            raise ChannelError(409, "A stream is already open for this session")
        connection.queue = asyncio.Queue()
        connection.state = ConnectionState.STREAMING
        logger.info(f"MCP push channel opened: {session_id}")
        return connection

    def close(self, session_id: str) -> None:
        connection = self.get(session_id)
        if connection is None:
            return
        connection.state = ConnectionState.CLOSED
        connection.queue = None
        self.store.delete(session_id)
        logger.info(f"MCP push channel closed: {session_id}")

    def publish(self, session_id: str, message: dict) -> bool:
        """Queue a server-initiated JSON-RPC message; False if not streaming."""
        connection = self.get(session_id)
        if connection is None or connection.state != ConnectionState.STREAMING:
            return False
        connection.queue.put_nowait(message)
        return True


def sse_frame(message: dict) -> str:
    return f"event: message\ndata: {json.dumps(message)}\n\n"


async def event_stream(
    registry: ConnectionRegistry,
    connection: Connection,
    is_disconnected: Callable[[], Awaitable[bool]],
    keepalive_seconds: float = 15.0
) -> AsyncIterator[str]:
    """Yield SSE frames for queued messages until the client disconnects."""
    queue = connection.queue
    try:
        while not await is_disconnected():
            try:
                message = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield sse_frame(message)
    finally:
        registry.close(connection.session_id)
