"""In-memory roster of live connections, backed by durable participants"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from core.errors import ConflictError, InvalidStateError, UnauthorizedError, ValidationError
from database.repository import QuizRepository
from models.participant import Participant

logger = logging.getLogger(__name__)


@dataclass
class ParticipantSnapshot:
    """What the registry knows about one live connection"""
    participant_id: int
    username: str
    session_id: str
    connection_id: Optional[str]
    test_id: Optional[int] = None
    has_submitted: bool = False
    connected_at: datetime = field(default_factory=datetime.utcnow)

    def roster_entry(self) -> dict:
        return {
            "username": self.username,
            "hasSubmitted": self.has_submitted,
            "connectedAt": self.connected_at.isoformat() if self.connected_at else None,
        }

    @classmethod
    def from_participant(cls, participant, connection_id: Optional[str]) -> "ParticipantSnapshot":
        return cls(
            participant_id=participant.id,
            username=participant.username,
            session_id=participant.session_id,
            connection_id=connection_id,
            test_id=participant.test_id,
            has_submitted=bool(participant.has_submitted),
            connected_at=participant.connected_at or datetime.utcnow(),
        )


def filter_words(words, limit: int = 15) -> List[str]:
    """
    Validate a submitted word list.

    Non-string and blank entries are dropped, the rest are trimmed and cut to
    `limit`. An empty result is a ValidationError; extra words are not.
    """
    if not isinstance(words, list):
        raise ValidationError("payload_invalid")
    if not words:
        raise ValidationError("words_required")
    valid = [word.strip() for word in words if isinstance(word, str) and word.strip()]
    if not valid:
        raise ValidationError("words_invalid")
    return valid[:limit]


class SessionRegistry:
    """
    Derived cache of who is connected right now.

    Keyed by connection handle. The store stays authoritative for identity
    and submission state; this map can be emptied at any time.
    """

    def __init__(self, repository: QuizRepository, max_words: int = 15):
        self.repository = repository
        self.max_words = max_words
        self._snapshots: Dict[str, ParticipantSnapshot] = {}

    # ============ Registration ============

    async def resolve_participant(self, session_id: str, username: str, connection_id: Optional[str] = None):
        """Find or create the durable participant for a session token."""
        username = (username or "").strip() if isinstance(username, str) else ""
        if not username:
            raise ValidationError("username_required")
        if not session_id or not isinstance(session_id, str):
            raise ValidationError("session_required")

        active = await self.repository.get_active_test()
        return await self.repository.upsert_participant(
            session_id=session_id,
            username=username,
            connection_id=connection_id,
            active_test_id=active.id if active else None,
        )

    async def register_connection(self, session_id: str, username: str, connection_id: str) -> ParticipantSnapshot:
        participant = await self.resolve_participant(session_id, username, connection_id)

        # A reconnect replaces the handle: drop stale entries of the same participant.
        for handle, snapshot in list(self._snapshots.items()):
            if snapshot.participant_id == participant.id and handle != connection_id:
                del self._snapshots[handle]
                logger.info(f"♻️ Replaced stale connection {handle} for {participant.username}")

        snapshot = ParticipantSnapshot.from_participant(participant, connection_id)
        self._snapshots[connection_id] = snapshot
        logger.info(f"✓ User connected: {snapshot.username} ({connection_id})")
        return snapshot

    def unregister_connection(self, connection_id: str) -> Optional[ParticipantSnapshot]:
        snapshot = self._snapshots.pop(connection_id, None)
        if snapshot:
            logger.info(f"➖ User left: {snapshot.username} ({connection_id})")
        return snapshot

    def get(self, connection_id: str) -> Optional[ParticipantSnapshot]:
        return self._snapshots.get(connection_id)

    # ============ Submission ============

    async def record_submission(self, connection_id: str, words) -> Tuple[ParticipantSnapshot, int]:
        snapshot = self._snapshots.get(connection_id)
        if snapshot is None:
            raise UnauthorizedError("session_not_found")

        active = await self.repository.get_active_test()
        if snapshot.has_submitted and (active is None or snapshot.test_id == active.id):
            raise ConflictError("already_submitted")
        if active is None:
            raise InvalidStateError("no_active_test")

        word_count = await self._submit(snapshot.participant_id, active.id, words)
        return self._snapshots.get(connection_id, snapshot), word_count

    async def record_session_submission(self, session_id: str, words) -> Tuple[Participant, int]:
        """Submission over HTTP, identified by the durable session token."""
        if not session_id:
            raise UnauthorizedError("session_not_found")
        participant = await self.repository.get_participant_by_session(session_id)
        if participant is None:
            raise UnauthorizedError("session_not_found")

        active = await self.repository.get_active_test()
        if participant.has_submitted and (active is None or participant.test_id == active.id):
            raise ConflictError("already_submitted")
        if active is None:
            raise InvalidStateError("no_active_test")

        word_count = await self._submit(participant.id, active.id, words)
        participant.test_id = active.id
        participant.has_submitted = True
        return participant, word_count

    async def _submit(self, participant_id: int, test_id: int, words) -> int:
        valid = filter_words(words, self.max_words)
        await self.repository.save_submission(participant_id, test_id, valid)

        for snapshot in self._snapshots.values():
            if snapshot.participant_id == participant_id:
                snapshot.test_id = test_id
                snapshot.has_submitted = True
        logger.info(f"✓ Words saved for participant {participant_id}: {len(valid)} words (test {test_id})")
        return len(valid)

    # ============ Roster ============

    def snapshot_roster(self) -> List[ParticipantSnapshot]:
        return list(self._snapshots.values())

    def roster_entries(self) -> List[dict]:
        return [snapshot.roster_entry() for snapshot in self._snapshots.values()]

    @property
    def connected_count(self) -> int:
        return len(self._snapshots)

    def submitted_handles(self, test_id: int) -> List[str]:
        return [
            handle for handle, snapshot in self._snapshots.items()
            if snapshot.test_id == test_id and snapshot.has_submitted
        ]

    # ============ Bulk state changes ============

    async def bind_connected_to_test(self, test_id: int) -> int:
        """Associate every live participant with a newly started test."""
        participant_ids = sorted({snapshot.participant_id for snapshot in self._snapshots.values()})
        changed = await self.repository.bind_participants(participant_ids, test_id)
        self.rebind_to_test(test_id)
        return changed

    def rebind_to_test(self, test_id: int):
        for snapshot in self._snapshots.values():
            if snapshot.test_id != test_id:
                snapshot.test_id = test_id
                snapshot.has_submitted = False

    def clear_submission_state(self):
        for snapshot in self._snapshots.values():
            snapshot.test_id = None
            snapshot.has_submitted = False

    def clear(self) -> int:
        count = len(self._snapshots)
        self._snapshots.clear()
        return count
