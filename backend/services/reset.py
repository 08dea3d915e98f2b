"""Soft and emergency reset procedures"""

import asyncio
import logging
from datetime import datetime
from typing import List, Tuple

from core.errors import PersistenceError
from database.repository import QuizRepository
from models.word_test import WordTestStatus
from realtime.broadcaster import NotificationBroadcaster
from services.lifecycle import OPEN_STATUSES, TestLifecycleManager
from services.session_registry import SessionRegistry
from utils.security import AdminSessionStore

logger = logging.getLogger(__name__)


class ResetCoordinator:
    """
    Brings every client back to a known state.

    Both procedures are idempotent and run one at a time.
    """

    def __init__(
        self,
        repository: QuizRepository,
        registry: SessionRegistry,
        broadcaster: NotificationBroadcaster,
        lifecycle: TestLifecycleManager,
        admin_sessions: AdminSessionStore,
    ):
        self.repository = repository
        self.registry = registry
        self.broadcaster = broadcaster
        self.lifecycle = lifecycle
        self.admin_sessions = admin_sessions
        self._lock = asyncio.Lock()

    async def soft_reset(self) -> dict:
        """
        Return everyone to the entry screen.

        Cancels the active test, clears submission state and associations but
        keeps identities, finished tests and their responses.
        """
        async with self._lock:
            cancelled = await self.lifecycle.cancel_open_tests([WordTestStatus.ACTIVE])
            cleared = await self.repository.clear_participant_state()
            self.registry.clear_submission_state()

            await self.broadcaster.user_reset()
            await self.broadcaster.roster_changed(self.registry.roster_entries())

        logger.info(f"🔄 Soft reset: {len(cancelled)} tests cancelled, {cleared} participants cleared")
        return {
            "cancelledTests": [test.id for test in cancelled],
            "participantsCleared": cleared,
        }

    async def emergency_reset(self) -> dict:
        """
        Wipe live state and force every client to rejoin.

        Store steps may fail independently; the registry wipe, the broadcast
        and the disconnect always run, and a store failure is raised after
        clients have been told to reload.
        """
        timestamp = datetime.utcnow().isoformat()
        failures: List[Tuple[str, Exception]] = []
        cancelled = []
        cleared = 0

        async with self._lock:
            logger.warning("🚨 Emergency reset started")
            try:
                cancelled = await self.lifecycle.cancel_open_tests(OPEN_STATUSES)
            except Exception as e:
                failures.append(("cancel_tests", e))
            try:
                cleared = await self.repository.clear_participant_state(drop_connections=True)
            except Exception as e:
                failures.append(("clear_participants", e))

            dropped = self.registry.clear()
            revoked = self.admin_sessions.revoke_all()

            try:
                await self.broadcaster.emergency_reset(timestamp)
            finally:
                closed = await self.broadcaster.disconnect_all()

        for step, error in failures:
            logger.error(f"❌ Emergency reset step {step} failed: {error}", exc_info=error)
        if failures:
            raise PersistenceError(
                "emergency_partial",
                "; ".join(f"{step}: {error}" for step, error in failures),
            ) from failures[0][1]

        logger.warning(
            f"🚨 Emergency reset done: {len(cancelled)} tests cancelled, {cleared} participants cleared, "
            f"{dropped} registry entries dropped, {revoked} admin sessions revoked, {closed} sockets closed"
        )
        return {
            "timestamp": timestamp,
            "cancelledTests": [test.id for test in cancelled],
            "participantsCleared": cleared,
            "connectionsClosed": closed,
            "adminSessionsRevoked": revoked,
        }
