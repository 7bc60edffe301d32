"""
Progress coordinator: records review outcomes, keeps the local progress view
consistent and persists it, buffering writes while the store is unreachable
"""

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime

from .config import Settings, get_settings
from .core.progress.progress_store import ProgressStore
from .core.scheduler.sync_retry_scheduler import SyncRetryScheduler
from .core.session.session_tracker import SessionTracker
from .core.store import RemoteStore
from .core.sync.connectivity import ConnectivityMonitor
from .core.sync.offline_queue import OfflineSyncQueue
from .exceptions import PersistenceError, ProgressLoadError, StoreUnavailableError
from .mastery import MasteryEngine, get_mastery_engine
from .models import (
    MIN_LEVEL,
    DifficultyRating,
    LearningSession,
    OfflineQueueItem,
    ProgressStats,
    QueueItemKind,
    ReviewOutcome,
    WordProgress,
)
from .scheduler import get_due_words
from .utils import calculate_success_rate, utc_now, validate_rating

logger = logging.getLogger(__name__)

# Failures of the store that are recovered by queueing
NETWORK_ERRORS = (PersistenceError, ConnectionError, TimeoutError)

OFFLINE_MESSAGE = (
    "You are currently offline. Changes will be synced when connection is restored."
)


def progress_key(user_id: str, word_id: int) -> tuple:
    return ("progress", user_id, word_id)


def session_key(session_id: str) -> tuple:
    return ("session", session_id)


class ProgressCoordinator:
    """Entry point for recording reviews and keeping progress in sync with the store"""

    def __init__(
        self,
        user_id: str | None,
        store: RemoteStore,
        connectivity: ConnectivityMonitor | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
        mastery_engine: MasteryEngine | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.connectivity = connectivity or ConnectivityMonitor()
        self.mastery_engine = mastery_engine or get_mastery_engine()
        self.progress_store = ProgressStore(user_id)
        self.session_tracker = SessionTracker()
        self.offline_queue = OfflineSyncQueue()
        self.retry_scheduler = SyncRetryScheduler(
            self._retry_pending, self.settings.sync_retry_interval
        )

        self._clock = clock or utc_now
        self._persist_lock = asyncio.Lock()
        self._flush_task: asyncio.Task | None = None
        # Sequence number of the last local change per word
        self._change_seq = 0
        self._changed: dict[int, int] = {}
        self._unsubscribe: Callable[[], None] | None = None

        self.loading = False
        self.error: str | None = None if self.connectivity.is_online else OFFLINE_MESSAGE

    # Lifecycle

    async def start(self):
        """Follow connectivity changes and retry pending writes periodically"""
        if self._unsubscribe is None:
            self._unsubscribe = self.connectivity.subscribe(self._on_connectivity_change)
        await self.retry_scheduler.start()
        logger.info(f"Progress coordinator started for user {self.user_id}")

    async def stop(self):
        """Stop background work; pending writes stay queued"""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.retry_scheduler.stop()

        task = self._cancel_flush()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info(f"Progress coordinator stopped, {self.pending_count} writes pending")

    # Status

    @property
    def user_id(self) -> str | None:
        return self.progress_store.user_id

    @property
    def is_online(self) -> bool:
        return self.connectivity.is_online

    @property
    def pending_count(self) -> int:
        return self.offline_queue.pending_count

    @property
    def has_offline_changes(self) -> bool:
        return not self.offline_queue.is_empty or self.offline_queue.is_draining

    @property
    def current_session(self) -> str | None:
        session = self.session_tracker.current
        return session.id if session else None

    @property
    def session_stats(self) -> dict[str, int]:
        return self.session_tracker.stats

    @property
    def progress(self) -> dict[int, WordProgress]:
        return self.progress_store.snapshot()

    def get_word_progress(self, word_id: int) -> WordProgress | None:
        return self.progress_store.get(word_id)

    def set_identity(self, user_id: str | None) -> None:
        """Switch to another identity, or none on logout"""
        if user_id == self.user_id:
            return

        self.session_tracker.abandon()
        self.progress_store.bind(user_id)
        self._changed.clear()
        self.error = None if self.is_online else OFFLINE_MESSAGE

    # Loading

    async def load_progress(self) -> bool:
        """
        Rehydrate the progress store from the durable store

        Returns:
            False when loading failed; the error is kept in ``self.error`` and
            the coordinator keeps working with the data it already has
        """
        user_id = self.user_id
        if user_id is None:
            self.progress_store.clear()
            return True

        load_seq = self._change_seq
        pending_before = self._pending_progress(user_id)

        self.loading = True
        try:
            records = await self.store.query_progress(user_id)
            loaded = self._parse_records(records)
        except NETWORK_ERRORS as e:
            logger.error(f"Error loading progress for user {user_id}: {e}")
            self.error = f"Failed to load progress: {e}"
            return False
        finally:
            self.loading = False

        if user_id != self.user_id:
            logger.warning(f"Identity changed while loading progress for {user_id}")
            return False

        # Words with undelivered writes, or answered while the query ran, keep
        # their local state: the store snapshot may predate those writes
        pending = {**pending_before, **self._pending_progress(user_id)}
        changed = {word_id for word_id, seq in self._changed.items() if seq > load_seq}

        merged = {progress.word_id: progress for progress in loaded}
        for word_id in pending.keys() | changed:
            local = self.progress_store.get(word_id) or pending.get(word_id)
            if local is not None:
                merged[word_id] = local

        self.progress_store.replace_all(merged.values())
        self.error = None if self.is_online else OFFLINE_MESSAGE
        logger.info(f"Loaded progress for {len(self.progress_store)} words of user {user_id}")
        return True

    refresh_progress = load_progress

    @staticmethod
    def _parse_records(records: Iterable[dict]) -> list[WordProgress]:
        loaded = []
        for record in records:
            try:
                loaded.append(WordProgress.from_record(record))
            except (KeyError, TypeError, ValueError) as e:
                raise ProgressLoadError(f"Malformed progress row {record!r}: {e}") from e
        return loaded

    def _pending_progress(self, user_id: str) -> dict[int, WordProgress]:
        """Latest undelivered progress per word, including a running flush"""
        pending = {}
        for item in self.offline_queue.pending_items():
            if (
                item.kind is QueueItemKind.PROGRESS_UPSERT
                and item.payload.get("user_id") == user_id
            ):
                progress = WordProgress.from_record(item.payload)
                pending[progress.word_id] = progress
        return pending

    # Reviews

    async def record_outcome(
        self,
        word_id: int,
        correct: bool,
        response_time_ms: int | None = None,
        difficulty_rating: DifficultyRating | int | None = None,
    ) -> WordProgress | None:
        """
        Apply a review outcome locally, then persist it

        The local update happens before any I/O and cannot fail for valid
        input. Store failures are never raised; the write is queued instead.

        Returns:
            The updated progress, or None when no identity is set
        """
        rating = None
        if difficulty_rating is not None:
            rating = validate_rating(difficulty_rating)
            if rating is None:
                raise ValueError(f"Invalid difficulty rating: {difficulty_rating!r}")

        outcome = ReviewOutcome(
            word_id=word_id,
            correct=bool(correct),
            response_time_ms=response_time_ms,
            difficulty_rating=DifficultyRating(rating) if rating is not None else None,
        )

        user_id = self.user_id
        if user_id is None:
            logger.warning(f"Ignoring outcome for word {word_id}: no identity")
            return None

        previous = self.progress_store.get(outcome.word_id)
        updated = self._apply_outcome(user_id, outcome, previous)
        self.session_tracker.record(outcome.correct)

        await self._persist(
            OfflineQueueItem(
                kind=QueueItemKind.PROGRESS_UPSERT,
                payload=updated.to_record(),
                enqueued_at=self._now(),
                key=progress_key(user_id, outcome.word_id),
            )
        )

        await self._log_review(
            user_id,
            outcome,
            previous.mastery_level if previous else MIN_LEVEL,
            updated,
        )
        return updated

    def _apply_outcome(
        self, user_id: str, outcome: ReviewOutcome, previous: WordProgress | None
    ) -> WordProgress:
        current_level = previous.mastery_level if previous else MIN_LEVEL
        now = self._now()

        updated = WordProgress(
            word_id=outcome.word_id,
            correct_count=(previous.correct_count if previous else 0) + int(outcome.correct),
            wrong_count=(previous.wrong_count if previous else 0) + int(not outcome.correct),
            mastery_level=self.mastery_engine.next_level(current_level, outcome.correct),
            last_practiced=max(now, previous.last_practiced) if previous else now,
            user_id=user_id,
        )
        self.progress_store.upsert(updated)
        self._change_seq += 1
        self._changed[outcome.word_id] = self._change_seq

        logger.debug(
            f"Word {outcome.word_id}: level {current_level} -> {updated.mastery_level} "
            f"(correct={outcome.correct})"
        )
        return updated

    async def _log_review(
        self,
        user_id: str,
        outcome: ReviewOutcome,
        previous_level: int,
        updated: WordProgress,
    ) -> None:
        """Best-effort audit record; skipped while offline"""
        if not self.settings.review_history_enabled or not self.is_online:
            return

        try:
            await self.store.insert_review(
                user_id,
                {
                    "word_id": outcome.word_id,
                    "correct": outcome.correct,
                    "response_time_ms": outcome.response_time_ms,
                    "difficulty_rating": (
                        int(outcome.difficulty_rating) if outcome.difficulty_rating else None
                    ),
                    "previous_level": previous_level,
                    "new_level": updated.mastery_level,
                    "review_date": updated.last_practiced.isoformat(),
                },
            )
        except NETWORK_ERRORS as e:
            logger.warning(f"Failed to log review for word {outcome.word_id}: {e}")

    # Queries

    def get_stats(self) -> ProgressStats:
        """Aggregate statistics from the local snapshot, no I/O"""
        progress = list(self.progress_store.snapshot().values())
        threshold = self.settings.mastered_level_threshold
        stats = ProgressStats()

        stats.total_words_studied = len(progress)
        stats.total_attempts = sum(item.total_attempts for item in progress)
        stats.correct_answers = sum(item.correct_count for item in progress)
        success_rate = calculate_success_rate(stats.correct_answers, stats.total_attempts)
        stats.accuracy = int(success_rate + 0.5)

        recent = sorted(progress, key=lambda item: item.last_practiced, reverse=True)
        for item in recent[: self.settings.stats_streak_window]:
            if item.correct_count > item.wrong_count:
                stats.current_streak += 1
            else:
                break
        stats.longest_streak = stats.current_streak

        for item in progress:
            stats.box_distribution[item.mastery_level] += 1
            if item.mastery_level >= threshold:
                stats.mastered_words += 1
            elif item.mastery_level > MIN_LEVEL:
                stats.words_in_progress += 1

        return stats

    def get_due_words(
        self, candidate_ids: Iterable[int], limit: int | None = None
    ) -> list[int]:
        """Due candidates, new and weak words first"""
        return get_due_words(
            candidate_ids, self.progress_store.snapshot(), self._now(), limit
        )

    # Sessions

    async def start_session(self, direction: str | None = None) -> str | None:
        """
        Open a learning session

        The store assigns the session ID when reachable; otherwise a local ID
        is generated and the session creation is queued.
        """
        user_id = self.user_id
        if user_id is None:
            logger.warning("Cannot start a session without an identity")
            return None

        direction = direction or self.settings.default_learning_direction
        started_at = self._now()

        async with self._persist_lock:
            session_id = None
            if self._can_write_directly():
                try:
                    session_id = await self.store.insert_session(user_id, direction, started_at)
                except NETWORK_ERRORS as e:
                    logger.warning(f"Failed to create session remotely, queueing: {e}")
                    self.error = str(e)

            if session_id is not None:
                self.session_tracker.start(session_id, user_id, direction, started_at)
                return session_id

            session_id = str(uuid.uuid4())
            session = self.session_tracker.start(session_id, user_id, direction, started_at)
            self._enqueue(
                OfflineQueueItem(
                    kind=QueueItemKind.SESSION_UPSERT,
                    payload={"id": session_id, **session.start_fields()},
                    enqueued_at=started_at,
                    key=session_key(session_id),
                )
            )
            return session_id

    async def end_session(self) -> LearningSession | None:
        """Close the open session and persist its aggregate"""
        session = self.session_tracker.end(self._now())
        if session is None:
            return None

        await self._persist(
            OfflineQueueItem(
                kind=QueueItemKind.SESSION_UPSERT,
                payload={"id": session.id, **session.end_fields()},
                enqueued_at=self._now(),
                key=session_key(session.id),
            )
        )
        return session

    # Persistence

    def _can_write_directly(self) -> bool:
        # Queued writes must land first, so direct writes wait for an empty queue
        return (
            self.is_online
            and self.offline_queue.is_empty
            and not self.offline_queue.is_draining
        )

    def _enqueue(self, item: OfflineQueueItem) -> None:
        self.offline_queue.enqueue(item)
        if self.is_online:
            self._schedule_flush()

    async def _persist(self, item: OfflineQueueItem) -> bool:
        """Write an item to the store, queueing it when that is not possible"""
        async with self._persist_lock:
            if not self._can_write_directly():
                self._enqueue(item)
                return False

            try:
                await self._deliver(item)
            except NETWORK_ERRORS as e:
                logger.warning(f"Failed to persist {item.kind.value}, queueing: {e}")
                self.error = str(e)
                self._enqueue(item)
                return False

            return True

    async def _deliver(self, item: OfflineQueueItem) -> None:
        payload = item.payload

        if item.kind is QueueItemKind.PROGRESS_UPSERT:
            await self.store.upsert_progress(payload["user_id"], payload["word_id"], payload)
        elif item.kind is QueueItemKind.SESSION_UPSERT:
            fields = {name: value for name, value in payload.items() if name != "id"}
            await self.store.upsert_session(payload["id"], fields)
        else:
            raise ValueError(f"Unknown queue item kind: {item.kind}")

    async def flush_offline_queue(self) -> int:
        """
        Deliver queued writes now

        Returns:
            Number of writes still pending
        """
        while True:
            failed = await self.offline_queue.flush(self._deliver)
            if failed or self.offline_queue.is_empty or not self.is_online:
                break

        if failed:
            self.error = f"{len(failed)} changes could not be synced"
        elif self.offline_queue.is_empty and self.is_online:
            self.error = None

        return self.offline_queue.pending_count

    async def wait_for_sync(self) -> None:
        """Wait for a background flush, if one is running"""
        task = self._flush_task
        if task is not None and not task.done():
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _retry_pending(self) -> None:
        if self.is_online and not self.offline_queue.is_empty:
            await self.flush_offline_queue()

    def _schedule_flush(self) -> None:
        if self._flush_task is not None and not self._flush_task.done():
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, flush deferred")
            return

        self._flush_task = loop.create_task(self.flush_offline_queue())
        self._flush_task.add_done_callback(self._on_flush_done)

    def _on_flush_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background flush failed: {error}", exc_info=error)

    def _cancel_flush(self) -> asyncio.Task | None:
        task = self._flush_task
        if task is not None and not task.done():
            task.cancel()
            return task
        return None

    def _on_connectivity_change(self, online: bool) -> None:
        if online:
            self.error = None
            if not self.offline_queue.is_empty:
                self._schedule_flush()
        else:
            self.error = OFFLINE_MESSAGE
            if self._cancel_flush() is not None:
                logger.info("Connectivity lost, cancelling flush")

    # Reset

    async def reset_progress(self, word_ids: list[int] | None = None) -> int:
        """
        Delete the user's progress, or only the given words, everywhere

        Unlike reviews this is not queued: it fails with PersistenceError when
        the store cannot be reached.
        """
        user_id = self.user_id
        if user_id is None:
            raise ValueError("Cannot reset progress without an identity")
        if not self.is_online:
            raise StoreUnavailableError("Progress can only be reset while online")

        task = self._cancel_flush()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        async with self._persist_lock:
            deleted = await self.store.delete_progress(user_id, word_ids)

            targets = set(word_ids) if word_ids is not None else None
            self.offline_queue.discard(
                lambda item: item.kind is QueueItemKind.PROGRESS_UPSERT
                and item.payload.get("user_id") == user_id
                and (targets is None or item.payload.get("word_id") in targets)
            )

            if targets is None:
                self.progress_store.clear()
                self._changed.clear()
            else:
                for word_id in targets:
                    self.progress_store.remove(word_id)
                    self._changed.pop(word_id, None)

        if not self.offline_queue.is_empty:
            self._schedule_flush()

        logger.info(f"Reset progress for user {user_id}: {deleted} rows deleted")
        return deleted

    def _now(self) -> datetime:
        return self._clock()

