"""
Repository tests against a temporary SQLite file.
Covers guarded transitions, atomic submissions and the statistics reads.
"""
import pytest

from core.errors import ConflictError, InvalidStateError, UnauthorizedError
from models.word_test import WordTestStatus


async def make_participant(repository, session_id, username, test_id=None):
    return await repository.upsert_participant(session_id, username, None, test_id)


async def make_active_test(repository, word):
    test = await repository.create_test(word)
    return await repository.transition_test(test.id, [WordTestStatus.READY], WordTestStatus.ACTIVE)


# ===========================================================================
# Test transitions
# ===========================================================================

class TestTransitions:

    @pytest.mark.asyncio
    async def test_created_test_is_ready(self, context):
        test = await context.repository.create_test("Kitap")
        assert test.status == WordTestStatus.READY.value
        assert test.started_at is None
        assert (await context.repository.get_ready_test()).id == test.id

    @pytest.mark.asyncio
    async def test_start_sets_started_at(self, context):
        test = await context.repository.create_test("Kitap")
        started = await context.repository.transition_test(test.id, [WordTestStatus.READY], WordTestStatus.ACTIVE)
        assert started.status == WordTestStatus.ACTIVE.value
        assert started.started_at is not None

    @pytest.mark.asyncio
    async def test_guard_miss_returns_none(self, context):
        test = await context.repository.create_test("Kitap")
        result = await context.repository.transition_test(test.id, [WordTestStatus.ACTIVE], WordTestStatus.FINISHED)
        assert result is None
        assert (await context.repository.get_test(test.id)).status == WordTestStatus.READY.value

    @pytest.mark.asyncio
    async def test_exclusive_start_refuses_second_active(self, context):
        repo = context.repository
        first = await repo.create_test("Kitap")
        second = await repo.create_test("Deniz")
        await repo.transition_test(first.id, [WordTestStatus.READY], WordTestStatus.ACTIVE, exclusive_active=True)

        with pytest.raises(ConflictError):
            await repo.transition_test(second.id, [WordTestStatus.READY], WordTestStatus.ACTIVE, exclusive_active=True)
        assert (await repo.get_active_test()).id == first.id

    @pytest.mark.asyncio
    async def test_cancel_tests_is_idempotent(self, context):
        repo = context.repository
        test = await repo.create_test("Kitap")
        cancelled = await repo.cancel_tests([WordTestStatus.READY, WordTestStatus.ACTIVE])
        assert [t.id for t in cancelled] == [test.id]
        assert cancelled[0].status == WordTestStatus.CANCELLED.value
        assert await repo.cancel_tests([WordTestStatus.READY, WordTestStatus.ACTIVE]) == []


# ===========================================================================
# Participants
# ===========================================================================

class TestParticipants:

    @pytest.mark.asyncio
    async def test_known_session_keeps_name(self, context):
        first = await make_participant(context.repository, "s1", "Ayse")
        again = await make_participant(context.repository, "s1", "Someone else")
        assert again.id == first.id
        assert again.username == "Ayse"

    @pytest.mark.asyncio
    async def test_new_association_resets_flag(self, context):
        repo = context.repository
        old = await repo.create_test("Kitap")
        await repo.transition_test(old.id, [WordTestStatus.READY], WordTestStatus.ACTIVE)
        participant = await make_participant(repo, "s1", "Ayse", old.id)
        await repo.save_submission(participant.id, old.id, ["okumak"])
        await repo.transition_test(old.id, [WordTestStatus.ACTIVE], WordTestStatus.FINISHED)

        new = await repo.create_test("Deniz")
        await repo.transition_test(new.id, [WordTestStatus.READY], WordTestStatus.ACTIVE)
        again = await make_participant(repo, "s1", "Ayse", new.id)
        assert again.test_id == new.id
        assert again.has_submitted is False

    @pytest.mark.asyncio
    async def test_clear_participant_state(self, context):
        repo = context.repository
        test = await make_active_test(repo, "Kitap")
        participant = await make_participant(repo, "s1", "Ayse", test.id)
        await repo.save_submission(participant.id, test.id, ["okumak"])

        assert await repo.clear_participant_state() == 1
        cleared = await repo.get_participant(participant.id)
        assert cleared.test_id is None
        assert cleared.has_submitted is False


# ===========================================================================
# Submissions
# ===========================================================================

class TestSubmissions:

    @pytest.mark.asyncio
    async def test_submission_writes_positions(self, context):
        repo = context.repository
        test = await make_active_test(repo, "Kitap")
        participant = await make_participant(repo, "s1", "Ayse", test.id)

        saved = await repo.save_submission(participant.id, test.id, ["okumak", "kalem", "sayfa"])
        assert saved.has_submitted is True
        responses = await repo.get_test_responses(test.id)
        assert [r["position"] for r in responses] == [1, 2, 3]
        assert [r["word"] for r in responses] == ["okumak", "kalem", "sayfa"]
        assert responses[0]["username"] == "Ayse"

    @pytest.mark.asyncio
    async def test_second_submission_conflicts(self, context):
        repo = context.repository
        test = await make_active_test(repo, "Kitap")
        participant = await make_participant(repo, "s1", "Ayse", test.id)
        await repo.save_submission(participant.id, test.id, ["okumak"])

        with pytest.raises(ConflictError):
            await repo.save_submission(participant.id, test.id, ["kalem"])
        assert await repo.count_test_words(test.id) == 1

    @pytest.mark.asyncio
    async def test_submission_to_finished_test_rejected(self, context):
        repo = context.repository
        test = await make_active_test(repo, "Kitap")
        participant = await make_participant(repo, "s1", "Ayse", test.id)
        await repo.transition_test(test.id, [WordTestStatus.ACTIVE], WordTestStatus.FINISHED)

        with pytest.raises(InvalidStateError):
            await repo.save_submission(participant.id, test.id, ["okumak"])
        assert await repo.count_test_words(test.id) == 0
        assert (await repo.get_participant(participant.id)).has_submitted is False

    @pytest.mark.asyncio
    async def test_unknown_participant_rejected(self, context):
        test = await context.repository.create_test("Kitap")
        with pytest.raises(UnauthorizedError):
            await context.repository.save_submission(999, test.id, ["okumak"])


# ===========================================================================
# Statistics
# ===========================================================================

class TestStatistics:

    @pytest.mark.asyncio
    async def test_counts_and_frequency(self, context):
        repo = context.repository
        test = await make_active_test(repo, "Kitap")
        ayse = await make_participant(repo, "s1", "Ayse", test.id)
        mehmet = await make_participant(repo, "s2", "Mehmet", test.id)
        await repo.save_submission(ayse.id, test.id, ["Okumak", "kalem", "sayfa"])
        await repo.save_submission(mehmet.id, test.id, ["okumak", "yazar", "kalem"])

        assert await repo.count_test_users(test.id) == 2
        assert await repo.count_test_words(test.id) == 6
        assert await repo.count_unique_words(test.id) == 4

        frequency = await repo.get_word_frequency(test.id)
        assert frequency[:2] == [{"word": "kalem", "count": 2}, {"word": "okumak", "count": 2}]
        assert {item["word"] for item in frequency} == {"okumak", "kalem", "sayfa", "yazar"}

    @pytest.mark.asyncio
    async def test_list_finished_tests_counts(self, context):
        repo = context.repository
        test = await repo.create_test("Kitap")
        await repo.transition_test(test.id, [WordTestStatus.READY], WordTestStatus.ACTIVE)
        participant = await make_participant(repo, "s1", "Ayse", test.id)
        await repo.save_submission(participant.id, test.id, ["okumak", "kalem"])
        await repo.transition_test(test.id, [WordTestStatus.ACTIVE], WordTestStatus.FINISHED)
        await repo.create_test("Deniz")

        finished = await repo.list_finished_tests()
        assert len(finished) == 1
        assert finished[0]["id"] == test.id
        assert finished[0]["user_count"] == 1
        assert finished[0]["response_count"] == 2
