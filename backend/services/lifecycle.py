"""
Test lifecycle: ready -> active -> finished, with cancelled reachable from
ready or active.

Transitions are serialized by one lock and written before anything is
broadcast, so a participant never reacts to a state the store does not hold.
"""

import asyncio
import logging
from typing import Iterable, List, Optional

from core.errors import ConflictError, InvalidStateError, NotFoundError, PersistenceError, ValidationError
from database.repository import QuizRepository
from models.word_test import WordTest, WordTestStatus
from realtime.broadcaster import NotificationBroadcaster
from services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)

OPEN_STATUSES = (WordTestStatus.READY, WordTestStatus.ACTIVE)


class TestLifecycleManager:
    """Owns the one-active-test rule and every status transition"""

    __test__ = False

    def __init__(
        self,
        repository: QuizRepository,
        registry: SessionRegistry,
        broadcaster: NotificationBroadcaster,
    ):
        self.repository = repository
        self.registry = registry
        self.broadcaster = broadcaster
        self._lock = asyncio.Lock()

    # ============ Queries ============

    async def get_active_test(self) -> Optional[WordTest]:
        return await self.repository.get_active_test()

    async def get_ready_test(self) -> Optional[WordTest]:
        return await self.repository.get_ready_test()

    async def get_latest_finished_test(self) -> Optional[WordTest]:
        return await self.repository.get_latest_finished_test()

    async def get_latest_test(self) -> Optional[WordTest]:
        return await self.repository.get_latest_test()

    async def list_tests(self, limit: int = 20) -> List[WordTest]:
        return await self.repository.list_tests(limit)

    async def _require_test(self, test_id: int) -> WordTest:
        test = await self.repository.get_test(test_id)
        if test is None:
            raise NotFoundError("test_not_found")
        return test

    # ============ Transitions ============

    async def create_test(self, word: str) -> WordTest:
        if not isinstance(word, str) or not word.strip():
            raise ValidationError("word_required")

        async with self._lock:
            if await self.repository.get_active_test() is not None:
                raise ConflictError("test_already_active")
            test = await self.repository.create_test(word.strip())

        logger.info(f"📝 Test created: {test.id} ({test.word})")
        return test

    async def start_test(self, test_id: int) -> WordTest:
        async with self._lock:
            test = await self._require_test(test_id)
            if test.status != WordTestStatus.READY.value:
                raise InvalidStateError("test_not_ready")
            active = await self.repository.get_active_test()
            if active is not None and active.id != test_id:
                raise ConflictError("test_already_active")

            started = await self.repository.transition_test(
                test_id, [WordTestStatus.READY], WordTestStatus.ACTIVE, exclusive_active=True
            )
            if started is None:
                raise InvalidStateError("test_not_ready")
            # The test is already active in the store; participants must still hear about it.
            try:
                await self.registry.bind_connected_to_test(started.id)
            except PersistenceError as e:
                logger.error(f"❌ Binding participants to test {started.id} failed: {e}", exc_info=e)
                self.registry.rebind_to_test(started.id)

        logger.info(f"🚀 Test started: {started.id} ({started.word})")
        await self.broadcaster.test_started(started, self.registry.submitted_handles(started.id))
        await self.broadcaster.roster_changed(self.registry.roster_entries())
        return started

    async def finish_test(self, test_id: int) -> WordTest:
        async with self._lock:
            await self._require_test(test_id)
            active = await self.repository.get_active_test()
            if active is None or active.id != test_id:
                raise InvalidStateError("test_not_active")

            finished = await self.repository.transition_test(
                test_id, [WordTestStatus.ACTIVE], WordTestStatus.FINISHED
            )
            if finished is None:
                raise InvalidStateError("test_not_active")

        logger.info(f"🏁 Test finished: {finished.id}")
        await self.broadcaster.test_finished(finished.id)
        return finished

    async def cancel_test(self, test_id: int) -> WordTest:
        async with self._lock:
            test = await self._require_test(test_id)
            if test.status not in (s.value for s in OPEN_STATUSES):
                raise InvalidStateError("test_not_cancellable")

            cancelled = await self.repository.transition_test(
                test_id, OPEN_STATUSES, WordTestStatus.CANCELLED
            )
            if cancelled is None:
                raise InvalidStateError("test_not_cancellable")

        logger.info(f"🚫 Test cancelled: {cancelled.id}")
        await self.broadcaster.test_cancelled(cancelled.id)
        return cancelled

    async def cancel_open_tests(self, statuses: Iterable[WordTestStatus] = OPEN_STATUSES) -> List[WordTest]:
        """Cancel every test in `statuses`. Calling it again is a no-op."""
        async with self._lock:
            cancelled = await self.repository.cancel_tests(statuses)

        for test in cancelled:
            logger.info(f"🚫 Test cancelled by reset: {test.id}")
            await self.broadcaster.test_cancelled(test.id)
        return cancelled
