"""Fan-out of lifecycle and roster events to participants and admin observers"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from fastapi import WebSocket, status

logger = logging.getLogger(__name__)

PARTICIPANTS = "participants"
ADMINS = "admins"


def envelope(event: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"type": event, "payload": payload or {}}


class NotificationBroadcaster:
    """
    Two audiences of live sockets, keyed by connection handle.

    Every fan-out holds its audience lock for the whole send loop, so two
    broadcasts to the same audience never interleave. A socket whose send
    fails is dropped from its audience.
    """

    def __init__(self):
        self._audiences: Dict[str, Dict[str, WebSocket]] = {PARTICIPANTS: {}, ADMINS: {}}
        self._locks: Dict[str, asyncio.Lock] = {PARTICIPANTS: asyncio.Lock(), ADMINS: asyncio.Lock()}

    # ============ Audience membership ============

    def add_participant(self, connection_id: str, websocket: WebSocket):
        self._audiences[PARTICIPANTS][connection_id] = websocket

    def promote_to_admin(self, connection_id: str) -> bool:
        """Move a socket from the participant audience to the admin audience."""
        websocket = self._audiences[PARTICIPANTS].pop(connection_id, None)
        if websocket is None:
            websocket = self._audiences[ADMINS].get(connection_id)
        if websocket is None:
            return False
        self._audiences[ADMINS][connection_id] = websocket
        return True

    def remove(self, connection_id: str):
        for members in self._audiences.values():
            members.pop(connection_id, None)

    def is_admin(self, connection_id: str) -> bool:
        return connection_id in self._audiences[ADMINS]

    def count(self, audience: str = PARTICIPANTS) -> int:
        return len(self._audiences[audience])

    # ============ Delivery ============

    async def send_to(self, connection_id: str, event: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        """Send one event to one socket, whichever audience it belongs to."""
        for name, members in self._audiences.items():
            websocket = members.get(connection_id)
            if websocket is None:
                continue
            async with self._locks[name]:
                return await self._deliver(name, connection_id, websocket, envelope(event, payload))
        return False

    async def broadcast(self, event: str, payload: Optional[Dict[str, Any]] = None, audience: str = PARTICIPANTS) -> int:
        """Send the same event to every member of an audience; returns deliveries."""
        message = envelope(event, payload)
        async with self._locks[audience]:
            delivered = 0
            for connection_id, websocket in list(self._audiences[audience].items()):
                if await self._deliver(audience, connection_id, websocket, message):
                    delivered += 1
        logger.debug(f"📡 {event} delivered to {delivered} {audience}")
        return delivered

    async def _deliver(self, audience: str, connection_id: str, websocket: WebSocket, message: Dict[str, Any]) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"Broadcast error to {connection_id} ({message['type']}): {e}")
            self._audiences[audience].pop(connection_id, None)
            return False

    # ============ Lifecycle events ============

    async def test_started(self, test, submitted_handles: Iterable[str] = ()):
        """
        Announce a started test.

        Each participant gets its own copy so that handles which already
        submitted for this test are told not to reopen the input view.
        """
        submitted = set(submitted_handles)
        async with self._locks[PARTICIPANTS]:
            for connection_id, websocket in list(self._audiences[PARTICIPANTS].items()):
                await self._deliver(PARTICIPANTS, connection_id, websocket, envelope("test-started", {
                    "testId": test.id,
                    "word": test.word,
                    "hasSubmitted": connection_id in submitted,
                }))
        logger.info(f"🚀 test-started sent for test {test.id} ({test.word})")

    async def test_finished(self, test_id: int):
        await self.broadcast("test-finished", {"testId": test_id})
        logger.info(f"🏁 test-finished sent for test {test_id}")

    async def test_cancelled(self, test_id: int):
        await self.broadcast("test-cancelled", {"testId": test_id})
        logger.info(f"🚫 test-cancelled sent for test {test_id}")

    # ============ Roster events ============

    async def roster_changed(self, roster: List[dict]):
        await self.broadcast("user-count", {"count": len(roster)})
        await self.broadcast("user-list-update", {"users": roster}, audience=ADMINS)

    async def user_submitted(self, username: str, word_count: int):
        await self.broadcast("user-submitted", {"username": username, "wordCount": word_count}, audience=ADMINS)

    async def admin_status(self, connection_id: str, status_payload: Dict[str, Any]):
        await self.send_to(connection_id, "admin-status", status_payload)

    # ============ Reset events ============

    async def user_reset(self):
        await self.broadcast("user-reset")

    async def emergency_reset(self, timestamp: str):
        payload = {"timestamp": timestamp}
        await self.broadcast("emergency-reset", payload)
        await self.broadcast("emergency-reset", payload, audience=ADMINS)

    async def disconnect_all(self, code: int = status.WS_1012_SERVICE_RESTART, reason: str = "emergency-reset") -> int:
        """Close every live socket of both audiences; returns how many were closed."""
        closed = 0
        for name in (PARTICIPANTS, ADMINS):
            async with self._locks[name]:
                members = self._audiences[name]
                sockets = list(members.items())
                members.clear()
            for connection_id, websocket in sockets:
                try:
                    await websocket.close(code=code, reason=reason)
                    closed += 1
                except Exception as e:
                    logger.warning(f"Failed to close {connection_id}: {e}")
        logger.warning(f"🔌 Closed {closed} live connections ({reason})")
        return closed
