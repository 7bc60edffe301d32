"""
Tests for the progress coordinator: reviews, sessions, stats and offline sync
"""

import asyncio

import pytest
from conftest import FakeStore

from progress_engine.config import Settings
from progress_engine.core.sync.connectivity import ConnectivityMonitor
from progress_engine.exceptions import StoreUnavailableError
from progress_engine.models import QueueItemKind
from progress_engine.progress_coordinator import OFFLINE_MESSAGE, ProgressCoordinator


class BlockingStore(FakeStore):
    """Store whose progress writes wait until released"""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def upsert_progress(self, user_id, word_id, fields):
        self.entered.set()
        await self.release.wait()
        return await super().upsert_progress(user_id, word_id, fields)


class StaleQueryStore(FakeStore):
    """Store whose progress query returns a snapshot taken before it waits"""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def query_progress(self, user_id):
        rows = await super().query_progress(user_id)
        self.entered.set()
        await self.release.wait()
        return rows


def progress_row(word_id, level, practiced, user_id="user-1"):
    return {
        "user_id": user_id,
        "word_id": word_id,
        "correct_count": level,
        "wrong_count": 0,
        "mastery_level": level,
        "last_practiced": practiced.isoformat(),
    }


class TestRecordOutcome:
    """Test applying review outcomes"""

    @pytest.mark.asyncio
    async def test_new_word_correct_answer(self, coordinator, store, clock):
        progress = await coordinator.record_outcome(42, True)

        assert progress.mastery_level == 1
        assert progress.correct_count == 1
        assert progress.wrong_count == 0
        assert progress.last_practiced == clock.now
        assert store.progress[("user-1", 42)]["mastery_level"] == 1

        clock.advance(days=2)
        assert coordinator.get_due_words([42]) == []

        clock.advance(days=1)
        assert coordinator.get_due_words([42]) == [42]

    @pytest.mark.asyncio
    async def test_wrong_answer_drops_two_levels(self, coordinator, clock):
        await coordinator.record_outcome(7, True)
        await coordinator.record_outcome(7, True)
        assert coordinator.get_word_progress(7).mastery_level == 2

        progress = await coordinator.record_outcome(7, False)

        assert progress.mastery_level == 0
        assert progress.correct_count == 2
        assert progress.wrong_count == 1

        clock.advance(hours=23)
        assert coordinator.get_due_words([7]) == []
        clock.advance(hours=1)
        assert coordinator.get_due_words([7]) == [7]

    @pytest.mark.asyncio
    async def test_level_capped_at_five(self, coordinator):
        for _ in range(7):
            progress = await coordinator.record_outcome(1, True)

        assert progress.mastery_level == 5

    @pytest.mark.asyncio
    async def test_review_history_logged(self, coordinator, store):
        await coordinator.record_outcome(3, True, response_time_ms=900, difficulty_rating=3)

        assert len(store.reviews) == 1
        review = store.reviews[0]
        assert review["word_id"] == 3
        assert review["correct"] is True
        assert review["response_time_ms"] == 900
        assert review["difficulty_rating"] == 3
        assert review["previous_level"] == 0
        assert review["new_level"] == 1

    @pytest.mark.asyncio
    async def test_review_history_disabled(self, store, connectivity, clock, tmp_path):
        settings = Settings(
            database_url=f"sqlite:///{tmp_path / 'progress.db'}",
            review_history_enabled=False,
            sync_retry_interval=0,
        )
        coordinator = ProgressCoordinator("user-1", store, connectivity, settings, clock)

        await coordinator.record_outcome(3, True)

        assert store.reviews == []

    @pytest.mark.asyncio
    async def test_invalid_difficulty_rating(self, coordinator, store):
        with pytest.raises(ValueError):
            await coordinator.record_outcome(3, True, difficulty_rating=7)

        assert coordinator.get_word_progress(3) is None
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_difficulty_rating_accepts_numeric_strings(self, coordinator, store):
        with pytest.raises(ValueError):
            await coordinator.record_outcome(3, True, difficulty_rating="x")

        await coordinator.record_outcome(3, True, difficulty_rating="3")

        assert store.reviews[0]["difficulty_rating"] == 3

    @pytest.mark.asyncio
    async def test_without_identity(self, store, connectivity, settings, clock):
        coordinator = ProgressCoordinator(None, store, connectivity, settings, clock)

        assert await coordinator.record_outcome(3, True) is None
        assert store.calls == []
        assert coordinator.pending_count == 0

    @pytest.mark.asyncio
    async def test_store_failure_is_not_raised(self, coordinator, store):
        store.available = False

        progress = await coordinator.record_outcome(5, True)
        await coordinator.wait_for_sync()

        assert progress.mastery_level == 1
        assert coordinator.get_word_progress(5).mastery_level == 1
        assert coordinator.pending_count == 1
        assert coordinator.error is not None
        assert store.reviews == []


class TestOfflineSync:
    """Test buffering and replay of writes"""

    @pytest.mark.asyncio
    async def test_offline_outcomes_are_queued_and_flushed(self, coordinator, store, connectivity):
        await coordinator.start()
        connectivity.mark_offline()

        await coordinator.record_outcome(1, True)
        await coordinator.record_outcome(2, False)
        await coordinator.record_outcome(1, True)

        assert coordinator.pending_count == 3
        assert coordinator.has_offline_changes
        assert coordinator.error == OFFLINE_MESSAGE
        assert store.calls == []

        connectivity.mark_online()
        await coordinator.wait_for_sync()

        assert coordinator.pending_count == 0
        assert not coordinator.has_offline_changes
        assert coordinator.error is None
        assert store.progress[("user-1", 1)]["mastery_level"] == 2
        assert store.progress[("user-1", 2)]["wrong_count"] == 1

        await coordinator.stop()

    @pytest.mark.asyncio
    async def test_replay_preserves_order(self, coordinator, store, connectivity):
        connectivity.mark_offline()
        await coordinator.record_outcome(1, True)
        await coordinator.record_outcome(1, True)
        connectivity.mark_online()

        # A new write while the queue is non-empty must not overtake it
        await coordinator.record_outcome(1, False)
        await coordinator.wait_for_sync()

        levels = [call[3]["mastery_level"] for call in store.calls if call[0] == "upsert_progress"]
        assert levels == [1, 2, 0]
        assert store.progress[("user-1", 1)]["mastery_level"] == 0
        assert coordinator.pending_count == 0

    @pytest.mark.asyncio
    async def test_failed_write_is_retried_first(self, coordinator, store):
        store.failing_words = {1}

        await coordinator.record_outcome(1, True)
        await coordinator.wait_for_sync()
        assert coordinator.pending_count == 1

        store.failing_words = set()
        await coordinator.record_outcome(2, True)
        await coordinator.wait_for_sync()

        delivered = [
            call[2]
            for call in store.calls
            if call[0] == "upsert_progress" and ("user-1", call[2]) in store.progress
        ]
        assert delivered[-2:] == [1, 2]
        assert coordinator.pending_count == 0

    @pytest.mark.asyncio
    async def test_manual_flush(self, coordinator, store):
        store.available = False
        await coordinator.record_outcome(1, True)
        await coordinator.wait_for_sync()
        assert coordinator.pending_count == 1

        store.available = True
        remaining = await coordinator.flush_offline_queue()

        assert remaining == 0
        assert coordinator.error is None
        assert ("user-1", 1) in store.progress

    @pytest.mark.asyncio
    async def test_going_offline_cancels_flush(self, settings, clock):
        store = BlockingStore()
        connectivity = ConnectivityMonitor(initially_online=False)
        coordinator = ProgressCoordinator("user-1", store, connectivity, settings, clock)
        await coordinator.start()

        await coordinator.record_outcome(1, True)
        await coordinator.record_outcome(2, True)

        connectivity.mark_online()
        await store.entered.wait()
        connectivity.mark_offline()
        await coordinator.wait_for_sync()

        assert coordinator.pending_count == 2
        assert [item.payload["word_id"] for item in coordinator.offline_queue.items()] == [1, 2]

        store.release.set()
        connectivity.mark_online()
        await coordinator.wait_for_sync()

        assert coordinator.pending_count == 0
        await coordinator.stop()

    @pytest.mark.asyncio
    async def test_periodic_retry(self, store, connectivity, clock, tmp_path):
        settings = Settings(
            database_url=f"sqlite:///{tmp_path / 'progress.db'}",
            sync_retry_interval=0.01,
        )
        coordinator = ProgressCoordinator("user-1", store, connectivity, settings, clock)
        await coordinator.start()

        store.failing_words = {1}
        await coordinator.record_outcome(1, True)
        await coordinator.wait_for_sync()
        assert coordinator.pending_count == 1

        store.failing_words = set()
        for _ in range(50):
            if coordinator.pending_count == 0:
                break
            await asyncio.sleep(0.01)

        assert coordinator.pending_count == 0
        await coordinator.stop()

    @pytest.mark.asyncio
    async def test_stop_keeps_pending_writes(self, coordinator, connectivity):
        await coordinator.start()
        connectivity.mark_offline()
        await coordinator.record_outcome(1, True)

        await coordinator.stop()

        assert coordinator.pending_count == 1


class TestSessions:
    """Test learning session lifecycle"""

    @pytest.mark.asyncio
    async def test_session_aggregate_persisted(self, coordinator, store):
        session_id = await coordinator.start_session("ru-it")
        assert session_id == "remote-1"
        assert coordinator.current_session == session_id

        await coordinator.record_outcome(1, True)
        await coordinator.record_outcome(2, False)
        await coordinator.record_outcome(3, True)
        assert coordinator.session_stats == {"words_studied": 3, "correct_answers": 2}

        session = await coordinator.end_session()

        assert session.words_studied == 3
        assert session.correct_answers == 2
        assert store.sessions["remote-1"]["words_studied"] == 3
        assert store.sessions["remote-1"]["correct_answers"] == 2
        assert store.sessions["remote-1"]["ended_at"] is not None
        assert coordinator.current_session is None

    @pytest.mark.asyncio
    async def test_default_direction(self, coordinator, store, settings):
        await coordinator.start_session()

        assert store.sessions["remote-1"]["learning_direction"] == settings.default_learning_direction

    @pytest.mark.asyncio
    async def test_session_start_uses_coordinator_clock(self, coordinator, store, clock):
        clock.advance(days=3)

        await coordinator.start_session("ru-it")

        assert store.sessions["remote-1"]["started_at"] == clock.now.isoformat()

    @pytest.mark.asyncio
    async def test_offline_session_is_queued(self, coordinator, store, connectivity):
        await coordinator.start()
        connectivity.mark_offline()

        session_id = await coordinator.start_session("it-ru")
        await coordinator.record_outcome(1, True)
        await coordinator.end_session()

        assert session_id is not None
        assert [item.kind for item in coordinator.offline_queue.items()] == [
            QueueItemKind.SESSION_UPSERT,
            QueueItemKind.PROGRESS_UPSERT,
            QueueItemKind.SESSION_UPSERT,
        ]

        connectivity.mark_online()
        await coordinator.wait_for_sync()

        assert store.call_names() == ["upsert_session", "upsert_progress", "upsert_session"]
        record = store.sessions[session_id]
        assert record["learning_direction"] == "it-ru"
        assert record["words_studied"] == 1
        assert record["correct_answers"] == 1
        await coordinator.stop()

    @pytest.mark.asyncio
    async def test_end_without_session(self, coordinator, store):
        assert await coordinator.end_session() is None
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_start_session_without_identity(self, store, connectivity, settings, clock):
        coordinator = ProgressCoordinator(None, store, connectivity, settings, clock)

        assert await coordinator.start_session() is None


class TestLoadProgress:
    """Test rehydration from the store"""

    @pytest.mark.asyncio
    async def test_load(self, coordinator, store, now):
        store.progress[("user-1", 9)] = {
            "user_id": "user-1",
            "word_id": 9,
            "correct_count": 4,
            "wrong_count": 1,
            "mastery_level": 3,
            "last_practiced": now.isoformat(),
        }
        store.progress[("user-2", 9)] = dict(store.progress[("user-1", 9)], user_id="user-2")

        assert await coordinator.load_progress() is True

        assert set(coordinator.progress) == {9}
        assert coordinator.get_word_progress(9).mastery_level == 3
        assert coordinator.loading is False

    @pytest.mark.asyncio
    async def test_load_failure_keeps_existing_data(self, coordinator, store):
        await coordinator.record_outcome(1, True)
        store.available = False

        assert await coordinator.load_progress() is False

        assert coordinator.error is not None
        assert coordinator.get_word_progress(1).mastery_level == 1
        assert coordinator.loading is False

    @pytest.mark.asyncio
    async def test_queued_writes_survive_reload(self, coordinator, store, connectivity):
        connectivity.mark_offline()
        await coordinator.record_outcome(5, True)

        assert await coordinator.refresh_progress() is True

        assert coordinator.get_word_progress(5).mastery_level == 1
        assert coordinator.pending_count == 1

    @pytest.mark.asyncio
    async def test_load_keeps_writes_of_running_flush(self, settings, clock, now):
        store = BlockingStore()
        connectivity = ConnectivityMonitor(initially_online=False)
        coordinator = ProgressCoordinator("user-1", store, connectivity, settings, clock)
        await coordinator.start()

        await coordinator.record_outcome(1, True)
        store.progress[("user-1", 2)] = progress_row(2, 3, now)

        connectivity.mark_online()
        await store.entered.wait()
        assert coordinator.offline_queue.is_empty

        assert await coordinator.load_progress() is True

        assert coordinator.get_word_progress(1).mastery_level == 1
        assert coordinator.get_word_progress(2).mastery_level == 3

        store.release.set()
        await coordinator.wait_for_sync()
        assert store.progress[("user-1", 1)]["mastery_level"] == 1
        await coordinator.stop()

    @pytest.mark.asyncio
    async def test_load_keeps_answers_given_during_query(
        self, connectivity, settings, clock, now
    ):
        store = StaleQueryStore()
        store.progress[("user-1", 7)] = progress_row(7, 0, now)
        store.progress[("user-1", 9)] = progress_row(9, 2, now)
        coordinator = ProgressCoordinator("user-1", store, connectivity, settings, clock)

        load = asyncio.create_task(coordinator.load_progress())
        await store.entered.wait()
        await coordinator.record_outcome(7, True)
        store.release.set()

        assert await load is True

        assert coordinator.get_word_progress(7).mastery_level == 1
        assert coordinator.get_word_progress(9).mastery_level == 2

    @pytest.mark.asyncio
    async def test_load_drops_words_deleted_remotely(self, coordinator, store):
        await coordinator.record_outcome(1, True)
        del store.progress[("user-1", 1)]

        assert await coordinator.load_progress() is True

        assert coordinator.get_word_progress(1) is None

    @pytest.mark.asyncio
    async def test_malformed_row_fails_load(self, coordinator, store, now):
        await coordinator.record_outcome(1, True)
        store.progress[("user-1", 2)] = progress_row(2, 7, now)

        assert await coordinator.load_progress() is False

        assert "Malformed progress row" in coordinator.error
        assert coordinator.get_word_progress(1).mastery_level == 1
        assert coordinator.get_word_progress(2) is None
        assert coordinator.loading is False

    @pytest.mark.asyncio
    async def test_load_without_identity(self, store, connectivity, settings, clock):
        coordinator = ProgressCoordinator(None, store, connectivity, settings, clock)

        assert await coordinator.load_progress() is True
        assert store.calls == []


class TestIdentity:
    """Test switching users"""

    @pytest.mark.asyncio
    async def test_identity_change_clears_state(self, coordinator):
        await coordinator.start_session()
        await coordinator.record_outcome(1, True)

        coordinator.set_identity("user-2")

        assert coordinator.user_id == "user-2"
        assert coordinator.progress == {}
        assert coordinator.current_session is None

    @pytest.mark.asyncio
    async def test_logout(self, coordinator, store):
        await coordinator.record_outcome(1, True)
        coordinator.set_identity(None)
        store.calls.clear()

        assert await coordinator.record_outcome(1, True) is None
        assert store.calls == []


class TestStatsAndDueWords:
    """Test derived queries"""

    @pytest.mark.asyncio
    async def test_stats(self, coordinator, clock):
        await coordinator.record_outcome(3, False)
        clock.advance(minutes=1)
        await coordinator.record_outcome(1, True)
        clock.advance(minutes=1)
        await coordinator.record_outcome(2, True)
        await coordinator.record_outcome(2, True)

        stats = coordinator.get_stats()

        assert stats.total_words_studied == 3
        assert stats.total_attempts == 4
        assert stats.correct_answers == 3
        assert stats.accuracy == 75
        assert stats.current_streak == 2
        assert stats.mastered_words == 0
        assert stats.words_in_progress == 2
        assert stats.box_distribution == {0: 1, 1: 1, 2: 1, 3: 0, 4: 0, 5: 0}

    @pytest.mark.asyncio
    async def test_mastered_words(self, coordinator):
        for _ in range(4):
            await coordinator.record_outcome(1, True)

        stats = coordinator.get_stats()

        assert stats.mastered_words == 1
        assert stats.words_in_progress == 0

    def test_empty_stats(self, coordinator):
        stats = coordinator.get_stats()

        assert stats.total_words_studied == 0
        assert stats.accuracy == 0
        assert stats.current_streak == 0

    @pytest.mark.asyncio
    async def test_due_words_priority(self, coordinator, clock):
        await coordinator.record_outcome(1, True)
        await coordinator.record_outcome(1, True)
        await coordinator.record_outcome(2, False)
        clock.advance(days=10)

        assert coordinator.get_due_words([1, 2, 3]) == [3, 2, 1]
        assert coordinator.get_due_words([1, 2, 3], limit=2) == [3, 2]


class TestResetProgress:
    """Test deleting progress"""

    @pytest.mark.asyncio
    async def test_reset_selected_words(self, coordinator, store):
        await coordinator.record_outcome(1, True)
        await coordinator.record_outcome(2, True)

        deleted = await coordinator.reset_progress([1])

        assert deleted == 1
        assert set(coordinator.progress) == {2}
        assert set(store.progress) == {("user-1", 2)}

    @pytest.mark.asyncio
    async def test_reset_all_discards_queued_writes(self, coordinator, store):
        store.failing_words = {1}
        await coordinator.record_outcome(1, True)
        await coordinator.wait_for_sync()
        assert coordinator.pending_count == 1

        await coordinator.reset_progress()

        assert coordinator.pending_count == 0
        assert coordinator.progress == {}

    @pytest.mark.asyncio
    async def test_reset_offline_fails(self, coordinator, connectivity):
        connectivity.mark_offline()

        with pytest.raises(StoreUnavailableError):
            await coordinator.reset_progress()

    @pytest.mark.asyncio
    async def test_reset_without_identity(self, store, connectivity, settings, clock):
        coordinator = ProgressCoordinator(None, store, connectivity, settings, clock)

        with pytest.raises(ValueError):
            await coordinator.reset_progress()
