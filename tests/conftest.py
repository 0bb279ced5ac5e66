"""Pytest configuration and shared fixtures."""

import pytest


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Reset logging state before each test."""
    from scanlink.logging import reset_logging

    reset_logging()
    yield
    reset_logging()


class MockChannel:
    """In-memory stand-in for a WebSocket channel."""

    def __init__(self, fail_send: bool = False):
        self.fail_send = fail_send
        self.closed = False
        self.sent = []

    async def send_str(self, data: str) -> None:
        if self.fail_send:
            raise ConnectionResetError("Cannot write to closing transport")
        if self.closed:
            raise ConnectionResetError("Channel closed")
        self.sent.append(data)

    async def close(self) -> bool:
        self.closed = True
        return True


@pytest.fixture
def channel_factory():
    """Factory for mock channels."""
    return MockChannel


@pytest.fixture
def channel(channel_factory):
    """Create an open mock channel."""
    return channel_factory()
