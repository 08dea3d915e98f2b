"""
Unit tests for NotificationBroadcaster using mock WebSockets.
"""
import pytest
from fastapi import status

from conftest import MockWebSocket
from models.word_test import WordTest
from realtime.broadcaster import ADMINS, PARTICIPANTS, NotificationBroadcaster, envelope


def make_broadcaster(participants=("p1", "p2"), admins=("a1",)):
    broadcaster = NotificationBroadcaster()
    sockets = {}
    for handle in participants + admins:
        sockets[handle] = MockWebSocket()
        broadcaster.add_participant(handle, sockets[handle])
    for handle in admins:
        broadcaster.promote_to_admin(handle)
    return broadcaster, sockets


def test_envelope_shape():
    assert envelope("user-reset") == {"type": "user-reset", "payload": {}}
    assert envelope("user-count", {"count": 2}) == {"type": "user-count", "payload": {"count": 2}}


def test_promote_moves_socket_between_audiences():
    broadcaster, _ = make_broadcaster()
    assert broadcaster.count(PARTICIPANTS) == 2
    assert broadcaster.count(ADMINS) == 1
    assert broadcaster.is_admin("a1")
    assert not broadcaster.is_admin("p1")


def test_promote_unknown_handle():
    broadcaster = NotificationBroadcaster()
    assert broadcaster.promote_to_admin("ghost") is False


@pytest.mark.asyncio
async def test_broadcast_reaches_only_its_audience():
    broadcaster, sockets = make_broadcaster()
    delivered = await broadcaster.broadcast("test-finished", {"testId": 1})
    assert delivered == 2
    assert sockets["p1"].last("test-finished")["payload"] == {"testId": 1}
    assert sockets["a1"].last("test-finished") is None


@pytest.mark.asyncio
async def test_failed_socket_is_dropped():
    broadcaster, sockets = make_broadcaster()
    broken = MockWebSocket(fail_on_send=True)
    broadcaster.add_participant("broken", broken)

    delivered = await broadcaster.broadcast("user-reset")
    assert delivered == 2
    assert broadcaster.count(PARTICIPANTS) == 2
    assert await broadcaster.send_to("broken", "pong") is False


@pytest.mark.asyncio
async def test_test_started_payload_per_recipient():
    broadcaster, sockets = make_broadcaster()
    test = WordTest(id=7, word="Kitap", status="active")

    await broadcaster.test_started(test, submitted_handles=["p2"])
    assert sockets["p1"].last("test-started")["payload"] == {"testId": 7, "word": "Kitap", "hasSubmitted": False}
    assert sockets["p2"].last("test-started")["payload"]["hasSubmitted"] is True
    assert sockets["a1"].last("test-started") is None


@pytest.mark.asyncio
async def test_roster_changed_splits_by_audience():
    broadcaster, sockets = make_broadcaster()
    roster = [{"username": "Ayse", "hasSubmitted": False, "connectedAt": None}]

    await broadcaster.roster_changed(roster)
    assert sockets["p1"].last("user-count")["payload"] == {"count": 1}
    assert sockets["p1"].last("user-list-update") is None
    assert sockets["a1"].last("user-list-update")["payload"] == {"users": roster}


@pytest.mark.asyncio
async def test_emergency_signal_precedes_close():
    broadcaster, sockets = make_broadcaster()

    await broadcaster.emergency_reset("2026-01-01T00:00:00")
    closed = await broadcaster.disconnect_all()

    assert closed == 3
    for ws in sockets.values():
        assert ws.closed
        assert ws.close_code == status.WS_1012_SERVICE_RESTART
        assert ws.sent_before_close[-1]["type"] == "emergency-reset"
    assert broadcaster.count(PARTICIPANTS) == 0
    assert broadcaster.count(ADMINS) == 0
