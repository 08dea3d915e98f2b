"""
Shared fixtures: every test gets its own settings, SQLite file and
application context, so no state leaks between tests.
"""
import pytest
from fastapi.testclient import TestClient

from config.settings import Settings
from core.state import build_context
from database.db import init_db
from main import create_app


# ---------------------------------------------------------------------------
# Mock WebSocket
# ---------------------------------------------------------------------------

class MockWebSocket:
    """Lightweight mock for fastapi.WebSocket."""
    def __init__(self, fail_on_send=False):
        self.sent_messages: list = []
        self.closed = False
        self.close_code = None
        self.close_reason = None
        self.fail_on_send = fail_on_send
        # Messages sent before close() was called, in order
        self.sent_before_close = None

    async def send_json(self, data: dict):
        if self.fail_on_send:
            raise RuntimeError("socket is gone")
        self.sent_messages.append(data)

    async def close(self, code: int = 1000, reason: str = None):
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self.sent_before_close = list(self.sent_messages)

    async def accept(self):
        pass

    def types(self) -> list:
        return [m.get("type") for m in self.sent_messages]

    def last(self, msg_type: str):
        """Return the last sent message of a given type."""
        for msg in reversed(self.sent_messages):
            if msg.get("type") == msg_type:
                return msg
        return None

    def all(self, msg_type: str) -> list:
        """Return all sent messages of a given type."""
        return [m for m in self.sent_messages if m.get("type") == msg_type]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'quiz.sqlite'}",
        SECRET_KEY="test-secret",
        ADMIN_USERNAME="admin",
        ADMIN_PASSWORD="admin123",
        READ_RETRY_DELAY=0,
        LANGUAGE="en",
    )


@pytest.fixture
def context(settings):
    """A ready-to-use context for calling services directly."""
    ctx = build_context(settings)
    init_db(ctx.engine)
    yield ctx
    ctx.engine.dispose()


@pytest.fixture
def client(settings):
    """TestClient over a fresh app; entering it runs the lifespan."""
    app = create_app(settings=settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers(client):
    res = client.post("/api/admin/login", json={"username": "admin", "password": "admin123"})
    assert res.status_code == 200
    return {"Authorization": f"Bearer {res.json()['token']}"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def recv_until(ws, msg_type, max_messages=50):
    """Receive WS messages until we get the expected type."""
    for _ in range(max_messages):
        data = ws.receive_json()
        if data.get("type") == msg_type:
            return data
    raise TimeoutError(f"Never received {msg_type} after {max_messages} messages")


async def add_live_participant(context, connection_id, username, session_id=None):
    """Register a participant on a mock socket, as the /ws handler would."""
    ws = MockWebSocket()
    context.broadcaster.add_participant(connection_id, ws)
    snapshot = await context.registry.register_connection(session_id or f"session-{connection_id}", username, connection_id)
    return ws, snapshot
