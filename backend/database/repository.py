"""
Persistence interface for tests, participants and responses.

Every public method is a coroutine. The SQLAlchemy work itself is
synchronous and runs in the threadpool, so handlers suspend only while a
query is pending. Reads are retried on transient OperationalError; writes
never are.
"""

import asyncio
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import distinct, func, or_
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from core.errors import ConflictError, InvalidStateError, PersistenceError, QuizError, UnauthorizedError
from models.participant import Participant
from models.response import Response
from models.word_test import WordTest, WordTestStatus

logger = logging.getLogger(__name__)


class QuizRepository:
    """Thin async contract over the relational store"""

    def __init__(
        self,
        session_factory: sessionmaker,
        read_attempts: int = 3,
        retry_delay: float = 0.05,
    ):
        self._session_factory = session_factory
        self.read_attempts = max(1, read_attempts)
        self.retry_delay = retry_delay

    # ============ Execution helpers ============

    async def _read(self, fn, *args):
        attempt = 0
        while True:
            attempt += 1
            try:
                return await asyncio.to_thread(fn, *args)
            except OperationalError as e:
                if attempt >= self.read_attempts:
                    logger.error(f"❌ Read {fn.__name__} failed after {attempt} attempts: {e}", exc_info=True)
                    raise PersistenceError("storage_error", str(e)) from e
                logger.warning(f"⚠️ Read {fn.__name__} failed (attempt {attempt}/{self.read_attempts}): {e}")
                await asyncio.sleep(self.retry_delay * attempt)
            except SQLAlchemyError as e:
                logger.error(f"❌ Read {fn.__name__} failed: {e}", exc_info=True)
                raise PersistenceError("storage_error", str(e)) from e

    async def _write(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except QuizError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"❌ Write {fn.__name__} failed: {e}", exc_info=True)
            raise PersistenceError("storage_error", str(e)) from e

    # ============ Tests ============

    async def create_test(self, word: str) -> WordTest:
        def _create_test():
            with self._session_factory.begin() as db:
                test = WordTest(word=word, status=WordTestStatus.READY.value, created_at=datetime.utcnow())
                db.add(test)
                db.flush()
                return test

        return await self._write(_create_test)

    async def get_test(self, test_id: int) -> Optional[WordTest]:
        def _get_test():
            with self._session_factory() as db:
                return db.get(WordTest, test_id)

        return await self._read(_get_test)

    async def get_active_test(self) -> Optional[WordTest]:
        def _get_active_test():
            with self._session_factory() as db:
                return (
                    db.query(WordTest)
                    .filter(WordTest.status == WordTestStatus.ACTIVE.value)
                    .order_by(WordTest.started_at.desc(), WordTest.id.desc())
                    .first()
                )

        return await self._read(_get_active_test)

    async def get_ready_test(self) -> Optional[WordTest]:
        def _get_ready_test():
            with self._session_factory() as db:
                return (
                    db.query(WordTest)
                    .filter(WordTest.status == WordTestStatus.READY.value)
                    .order_by(WordTest.created_at.desc(), WordTest.id.desc())
                    .first()
                )

        return await self._read(_get_ready_test)

    async def get_latest_test(self) -> Optional[WordTest]:
        def _get_latest_test():
            with self._session_factory() as db:
                return db.query(WordTest).order_by(WordTest.created_at.desc(), WordTest.id.desc()).first()

        return await self._read(_get_latest_test)

    async def get_latest_finished_test(self) -> Optional[WordTest]:
        def _get_latest_finished_test():
            with self._session_factory() as db:
                return (
                    db.query(WordTest)
                    .filter(WordTest.status == WordTestStatus.FINISHED.value)
                    .order_by(WordTest.finished_at.desc(), WordTest.id.desc())
                    .first()
                )

        return await self._read(_get_latest_finished_test)

    async def list_tests(self, limit: int = 20) -> List[WordTest]:
        def _list_tests():
            with self._session_factory() as db:
                return (
                    db.query(WordTest)
                    .order_by(WordTest.created_at.desc(), WordTest.id.desc())
                    .limit(limit)
                    .all()
                )

        return await self._read(_list_tests)

    async def transition_test(
        self,
        test_id: int,
        from_statuses: Iterable[WordTestStatus],
        to_status: WordTestStatus,
        exclusive_active: bool = False,
    ) -> Optional[WordTest]:
        """
        Move a test to `to_status` only if it is still in one of `from_statuses`.

        Returns the updated test, or None when the guard did not match.
        With `exclusive_active`, raises ConflictError if another test is active.
        """
        allowed = [s.value for s in from_statuses]

        def _transition_test():
            with self._session_factory.begin() as db:
                if exclusive_active:
                    other = (
                        db.query(WordTest.id)
                        .filter(WordTest.status == WordTestStatus.ACTIVE.value, WordTest.id != test_id)
                        .first()
                    )
                    if other is not None:
                        raise ConflictError("test_already_active")

                values = {WordTest.status: to_status.value}
                now = datetime.utcnow()
                if to_status == WordTestStatus.ACTIVE:
                    values[WordTest.started_at] = now
                else:
                    values[WordTest.finished_at] = now

                updated = (
                    db.query(WordTest)
                    .filter(WordTest.id == test_id, WordTest.status.in_(allowed))
                    .update(values, synchronize_session=False)
                )
                if updated == 0:
                    return None
                return db.get(WordTest, test_id, populate_existing=True)

        return await self._write(_transition_test)

    async def cancel_tests(self, statuses: Iterable[WordTestStatus]) -> List[WordTest]:
        """Cancel every test currently in one of `statuses`; returns the cancelled tests."""
        allowed = [s.value for s in statuses]

        def _cancel_tests():
            with self._session_factory.begin() as db:
                ids = [row.id for row in db.query(WordTest.id).filter(WordTest.status.in_(allowed)).all()]
                if not ids:
                    return []
                (
                    db.query(WordTest)
                    .filter(WordTest.id.in_(ids), WordTest.status.in_(allowed))
                    .update(
                        {WordTest.status: WordTestStatus.CANCELLED.value, WordTest.finished_at: datetime.utcnow()},
                        synchronize_session=False,
                    )
                )
                return (
                    db.query(WordTest)
                    .populate_existing()
                    .filter(WordTest.id.in_(ids))
                    .order_by(WordTest.id)
                    .all()
                )

        return await self._write(_cancel_tests)

    # ============ Participants ============

    async def get_participant(self, participant_id: int) -> Optional[Participant]:
        def _get_participant():
            with self._session_factory() as db:
                return db.get(Participant, participant_id)

        return await self._read(_get_participant)

    async def get_participant_by_session(self, session_id: str) -> Optional[Participant]:
        def _get_participant_by_session():
            with self._session_factory() as db:
                return db.query(Participant).filter(Participant.session_id == session_id).first()

        return await self._read(_get_participant_by_session)

    async def upsert_participant(
        self,
        session_id: str,
        username: str,
        connection_id: Optional[str],
        active_test_id: Optional[int],
    ) -> Participant:
        """
        Resolve the participant for a session token, creating it on first use.

        A known participant keeps its name. When a test is active and the
        participant is bound to a different one, the association moves to the
        active test and the submitted flag starts over.
        """

        def _upsert_participant():
            with self._session_factory.begin() as db:
                participant = db.query(Participant).filter(Participant.session_id == session_id).first()
                if participant is None:
                    participant = Participant(
                        username=username,
                        session_id=session_id,
                        connection_id=connection_id,
                        test_id=active_test_id,
                        has_submitted=False,
                        connected_at=datetime.utcnow(),
                    )
                    db.add(participant)
                    db.flush()
                    return participant

                if connection_id is not None:
                    participant.connection_id = connection_id
                    participant.connected_at = datetime.utcnow()
                if active_test_id is not None and participant.test_id != active_test_id:
                    participant.test_id = active_test_id
                    participant.has_submitted = False
                db.flush()
                return participant

        try:
            return await self._write(_upsert_participant)
        except PersistenceError as e:
            # Two first-connects raced on the unique session token; the row exists now.
            if not isinstance(e.__cause__, IntegrityError):
                raise
            logger.info(f"Session {session_id[:8]}… created concurrently, resolving existing row")
            return await self._write(_upsert_participant)

    async def bind_participants(self, participant_ids: List[int], test_id: int) -> int:
        """Associate participants with a test, resetting the flag where the association changes."""
        if not participant_ids:
            return 0

        def _bind_participants():
            with self._session_factory.begin() as db:
                return (
                    db.query(Participant)
                    .filter(
                        Participant.id.in_(participant_ids),
                        or_(Participant.test_id.is_(None), Participant.test_id != test_id),
                    )
                    .update(
                        {Participant.test_id: test_id, Participant.has_submitted: False},
                        synchronize_session=False,
                    )
                )

        return await self._write(_bind_participants)

    async def save_submission(self, participant_id: int, test_id: int, words: List[str]) -> Participant:
        """
        Write a participant's whole response set and mark them submitted, atomically.

        The flag flip is a guarded UPDATE, so a concurrent second submission for
        the same (participant, test) fails with ConflictError.
        """

        def _save_submission():
            with self._session_factory.begin() as db:
                if db.get(Participant, participant_id) is None:
                    raise UnauthorizedError("session_not_found")

                # The test may have been finished or cancelled since the caller looked it up.
                still_active = (
                    db.query(WordTest.id)
                    .filter(WordTest.id == test_id, WordTest.status == WordTestStatus.ACTIVE.value)
                    .first()
                )
                if still_active is None:
                    raise InvalidStateError("no_active_test")

                open_for_test = or_(
                    Participant.test_id.is_(None),
                    Participant.test_id != test_id,
                    Participant.has_submitted.is_(False),
                )
                updated = (
                    db.query(Participant)
                    .filter(Participant.id == participant_id, open_for_test)
                    .update(
                        {Participant.test_id: test_id, Participant.has_submitted: True},
                        synchronize_session=False,
                    )
                )
                if updated == 0:
                    raise ConflictError("already_submitted")

                now = datetime.utcnow()
                for position, word in enumerate(words, start=1):
                    db.add(Response(
                        user_id=participant_id,
                        test_id=test_id,
                        word=word,
                        position=position,
                        created_at=now,
                    ))
                db.flush()
                return db.get(Participant, participant_id, populate_existing=True)

        try:
            return await self._write(_save_submission)
        except PersistenceError as e:
            if isinstance(e.__cause__, IntegrityError):
                raise ConflictError("already_submitted") from e
            raise

    async def clear_participant_state(self, drop_connections: bool = False) -> int:
        """Clear every participant's submitted flag and test association."""

        def _clear_participant_state():
            values = {Participant.has_submitted: False, Participant.test_id: None}
            if drop_connections:
                values[Participant.connection_id] = None
            with self._session_factory.begin() as db:
                return db.query(Participant).update(values, synchronize_session=False)

        return await self._write(_clear_participant_state)

    # ============ Responses & statistics ============

    async def count_test_users(self, test_id: int) -> int:
        def _count_test_users():
            with self._session_factory() as db:
                return db.query(func.count(distinct(Response.user_id))).filter(Response.test_id == test_id).scalar() or 0

        return await self._read(_count_test_users)

    async def count_test_words(self, test_id: int) -> int:
        def _count_test_words():
            with self._session_factory() as db:
                return db.query(func.count(Response.id)).filter(Response.test_id == test_id).scalar() or 0

        return await self._read(_count_test_words)

    async def count_unique_words(self, test_id: int) -> int:
        def _count_unique_words():
            with self._session_factory() as db:
                return (
                    db.query(func.count(distinct(func.lower(Response.word))))
                    .filter(Response.test_id == test_id)
                    .scalar()
                    or 0
                )

        return await self._read(_count_unique_words)

    async def get_word_frequency(self, test_id: int) -> List[dict]:
        def _get_word_frequency():
            with self._session_factory() as db:
                word = func.lower(Response.word).label("word")
                count = func.count(Response.id).label("count")
                rows = (
                    db.query(word, count)
                    .filter(Response.test_id == test_id)
                    .group_by(word)
                    .order_by(count.desc(), word)
                    .all()
                )
                return [{"word": row.word, "count": row.count} for row in rows]

        return await self._read(_get_word_frequency)

    async def get_test_responses(self, test_id: int) -> List[dict]:
        def _get_test_responses():
            with self._session_factory() as db:
                rows = (
                    db.query(Response, Participant.username)
                    .join(Participant, Response.user_id == Participant.id)
                    .filter(Response.test_id == test_id)
                    .order_by(Response.created_at, Response.id)
                    .all()
                )
                return [
                    {
                        "user_id": response.user_id,
                        "username": username,
                        "word": response.word,
                        "position": response.position,
                        "created_at": response.created_at,
                    }
                    for response, username in rows
                ]

        return await self._read(_get_test_responses)

    async def list_finished_tests(self, limit: int = 20) -> List[dict]:
        def _list_finished_tests():
            with self._session_factory() as db:
                user_count = (
                    db.query(func.count(distinct(Response.user_id)))
                    .filter(Response.test_id == WordTest.id)
                    .correlate(WordTest)
                    .scalar_subquery()
                )
                response_count = (
                    db.query(func.count(Response.id))
                    .filter(Response.test_id == WordTest.id)
                    .correlate(WordTest)
                    .scalar_subquery()
                )
                rows = (
                    db.query(WordTest, user_count.label("user_count"), response_count.label("response_count"))
                    .filter(WordTest.status == WordTestStatus.FINISHED.value)
                    .order_by(WordTest.finished_at.desc(), WordTest.id.desc())
                    .limit(limit)
                    .all()
                )
                return [
                    {**test.to_dict(), "user_count": users, "response_count": responses}
                    for test, users, responses in rows
                ]

        return await self._read(_list_finished_tests)
