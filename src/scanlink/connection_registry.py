"""Track live display-device connections and push messages to them."""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Optional, Protocol

from scanlink.errors import TransportError
from scanlink.message import InitMessage, Message, encode_message

logger = logging.getLogger(__name__)


class ChannelProtocol(Protocol):
    """Protocol for WebSocket-like channels."""

    @property
    def closed(self) -> bool:
        """Whether the channel is closed."""
        ...

    async def send_str(self, data: str) -> None:
        """Send a text frame."""
        ...

    async def close(self) -> Any:
        """Close the channel."""
        ...


class ConnectionState(Enum):
    """Per-connection lifecycle states."""

    CONNECTING = auto()
    OPEN = auto()
    CLOSED = auto()
    ERRORED = auto()


class ConnectionEvent(Enum):
    """Lifecycle events reported by the transport."""

    OPEN = auto()
    CLOSE = auto()
    ERROR = auto()


_TERMINAL_STATES = (ConnectionState.CLOSED, ConnectionState.ERRORED)


def generate_connection_id() -> str:
    """Generate a new opaque connection id."""
    return str(uuid.uuid4())


def is_valid_connection_id(value: Any) -> bool:
    """Check that a value is a syntactically well-formed connection id.

    Only the canonical lowercase hyphenated form produced by
    ``generate_connection_id`` is accepted. The id does not have to belong to
    a live connection.
    """
    if not isinstance(value, str):
        return False
    try:
        return str(uuid.UUID(value)) == value
    except ValueError:
        return False


@dataclass
class Connection:
    """Registry entry wrapping one device channel."""

    connection_id: str
    channel: Any  # ChannelProtocol
    state: ConnectionState = ConnectionState.CONNECTING

    @property
    def is_open(self) -> bool:
        return self.state == ConnectionState.OPEN and not self.channel.closed

    async def send(self, message: Message) -> None:
        """Encode and send a message on this connection's channel."""
        await self.channel.send_str(encode_message(message))

    async def close(self) -> None:
        """Close the underlying channel."""
        await self.channel.close()


class ConnectionRegistry:
    """Registry of live connections keyed by server-issued id.

    All map mutations happen under an asyncio lock. Channel I/O never
    happens while the lock is held, so a slow or broken device cannot stall
    operations on other connections.
    """

    def __init__(self, send_timeout: float = 5.0):
        """Initialize connection registry.

        Args:
            send_timeout: Timeout for a single send, in seconds.
        """
        self._connections: dict[str, Connection] = {}
        self._send_timeout = send_timeout
        self._lock = asyncio.Lock()

    async def register(self, channel: ChannelProtocol) -> str:
        """Register a newly opened channel and bootstrap it.

        Allocates a fresh id, stores the entry, sends the ``init`` message
        carrying the id, and marks the connection open.

        Args:
            channel: The device's channel.

        Returns:
            The new connection id.

        Raises:
            TransportError: If the bootstrap message could not be sent. The
                entry is removed before raising.
        """
        async with self._lock:
            connection_id = generate_connection_id()
            while connection_id in self._connections:
                connection_id = generate_connection_id()
            conn = Connection(connection_id=connection_id, channel=channel)
            self._connections[connection_id] = conn

        try:
            await asyncio.wait_for(
                conn.send(InitMessage(client_id=connection_id)),
                timeout=self._send_timeout,
            )
        except Exception as e:
            logger.warning(f"Bootstrap to {connection_id[:8]}... failed: {e!r}")
            await self._discard(conn, ConnectionState.ERRORED)
            raise TransportError(f"Could not bootstrap connection: {e!r}") from e

        await self.handle_event(connection_id, ConnectionEvent.OPEN)
        logger.info(f"Connection registered: {connection_id[:8]}...")
        return connection_id

    async def unregister(self, connection_id: str) -> None:
        """Remove a connection if present. Idempotent."""
        async with self._lock:
            conn = self._connections.pop(connection_id, None)
        if conn is not None:
            if conn.state not in _TERMINAL_STATES:
                conn.state = ConnectionState.CLOSED
            logger.info(f"Connection unregistered: {connection_id[:8]}...")

    async def handle_event(self, connection_id: str, event: ConnectionEvent) -> None:
        """Apply a transport lifecycle event to a connection.

        ``OPEN`` moves a connecting entry to open. ``CLOSE`` and ``ERROR``
        are terminal and deregister the entry. Events for unknown ids are
        ignored.
        """
        async with self._lock:
            conn = self._connections.get(connection_id)
            if conn is None:
                return

            if event == ConnectionEvent.OPEN:
                if conn.state == ConnectionState.CONNECTING:
                    conn.state = ConnectionState.OPEN
                return

            conn.state = (
                ConnectionState.CLOSED
                if event == ConnectionEvent.CLOSE
                else ConnectionState.ERRORED
            )
            del self._connections[connection_id]

        if event == ConnectionEvent.ERROR:
            logger.warning(f"Connection errored: {connection_id[:8]}...")
        else:
            logger.info(f"Connection closed: {connection_id[:8]}...")

    async def push(self, connection_id: str, message: Message) -> bool:
        """Send a message to a live connection.

        A connection found closed, or whose send fails or times out, is
        treated as disconnected and removed.

        Args:
            connection_id: Target connection id.
            message: Message to deliver.

        Returns:
            True if the channel was open and the send was accepted.
        """
        async with self._lock:
            conn = self._connections.get(connection_id)

        if conn is None:
            logger.debug(f"Push to unknown connection {connection_id[:8]}...")
            return False

        if not conn.is_open:
            logger.info(f"Push to closed connection {connection_id[:8]}..., removing")
            await self._discard(conn, ConnectionState.CLOSED)
            return False

        try:
            await asyncio.wait_for(conn.send(message), timeout=self._send_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Push to {connection_id[:8]}... timed out, removing")
            await self._discard(conn, ConnectionState.ERRORED)
            return False
        except Exception as e:
            logger.warning(f"Push to {connection_id[:8]}... failed: {e!r}, removing")
            await self._discard(conn, ConnectionState.ERRORED)
            return False

        return True

    def is_registered(self, connection_id: str) -> bool:
        return connection_id in self._connections

    async def _discard(self, conn: Connection, state: ConnectionState) -> None:
        """Remove an entry, but only if it is still the registered one."""
        async with self._lock:
            if self._connections.get(conn.connection_id) is conn:
                del self._connections[conn.connection_id]
            if conn.state not in _TERMINAL_STATES:
                conn.state = state

    async def close_all(self) -> None:
        """Close all connections gracefully."""
        async with self._lock:
            conns = list(self._connections.values())
            self._connections.clear()

        for conn in conns:
            conn.state = ConnectionState.CLOSED

        if conns:
            await asyncio.gather(
                *[conn.close() for conn in conns],
                return_exceptions=True,
            )

    def __len__(self) -> int:
        return len(self._connections)
