"""Single-use scan sessions linking a QR code to its originating device.

A scan session is created for every code issued and consumed at most once.
Consuming is the only way to read a session, so a session can never be
inspected without also being invalidated.
"""

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def generate_scan_id() -> str:
    """Generate an unguessable scan id (256 bits, URL safe)."""
    return secrets.token_urlsafe(32)


@dataclass(frozen=True)
class ScanSession:
    """A not-yet-redeemed scan code.

    Attributes:
        scan_id: Bearer credential presented by the redeeming device.
        origin_connection_id: Connection that requested the code. It may
            disappear before the code is redeemed.
        target: Opaque content reference, not interpreted by the store.
        created_at: Unix timestamp when the session was created.
        expires_at: Unix timestamp after which the session is invalid, or
            None if the session never expires.
    """

    scan_id: str
    origin_connection_id: str
    target: str
    created_at: float = field(default_factory=time.time)
    expires_at: Optional[float] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (time.time() if now is None else now) > self.expires_at


class ScanSessionStore:
    """In-memory store of scan sessions with atomic consume."""

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize scan session store.

        Args:
            ttl_seconds: Session lifetime. 0 disables expiry.
            clock: Time source, injectable for testing.
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, ScanSession] = {}
        self._lock = asyncio.Lock()
        self._sweep_task: Optional[asyncio.Task] = None

    async def create(self, origin_connection_id: str, target: str) -> str:
        """Create a new session.

        Repeated calls for the same origin and target create independent
        sessions.

        Returns:
            The new scan id.
        """
        now = self._clock()
        expires_at = now + self.ttl_seconds if self.ttl_seconds > 0 else None

        async with self._lock:
            scan_id = generate_scan_id()
            while scan_id in self._sessions:
                scan_id = generate_scan_id()
            self._sessions[scan_id] = ScanSession(
                scan_id=scan_id,
                origin_connection_id=origin_connection_id,
                target=target,
                created_at=now,
                expires_at=expires_at,
            )

        logger.debug(
            f"Scan session created: {scan_id[:8]}... "
            f"for {origin_connection_id[:8]}..."
        )
        return scan_id

    async def consume(self, scan_id: str) -> Optional[ScanSession]:
        """Atomically remove and return a session.

        At most one caller ever receives a given session. An expired
        session is removed and reported as absent.

        Returns:
            The session, or None if unknown, already consumed, or expired.
        """
        async with self._lock:
            session = self._sessions.pop(scan_id, None)

        if session is None:
            return None

        if session.is_expired(self._clock()):
            logger.info(f"Scan session expired at redemption: {scan_id[:8]}...")
            return None

        return session

    async def sweep_expired(self) -> int:
        """Remove all expired sessions.

        Returns:
            Number of sessions removed.
        """
        now = self._clock()
        async with self._lock:
            expired = [
                scan_id
                for scan_id, session in self._sessions.items()
                if session.is_expired(now)
            ]
            for scan_id in expired:
                del self._sessions[scan_id]

        if expired:
            logger.info(f"Swept {len(expired)} expired scan session(s)")
        return len(expired)

    def start_sweeper(self, interval: float) -> None:
        """Start periodic expiry sweeping in the background.

        Does nothing if expiry is disabled, the interval is 0, or a sweeper
        is already running.
        """
        if self.ttl_seconds <= 0 or interval <= 0 or self._sweep_task is not None:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop(interval))

    async def stop_sweeper(self) -> None:
        """Stop the background sweeper if running."""
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep_expired()
            except Exception as e:
                logger.error(f"Scan session sweep failed: {e!r}")

    def __len__(self) -> int:
        return len(self._sessions)
