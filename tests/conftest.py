"""
Shared fixtures: an in-memory store with switchable failures and a fixed clock
"""

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from progress_engine.config import Settings
from progress_engine.core.sync.connectivity import ConnectivityMonitor
from progress_engine.exceptions import StoreUnavailableError
from progress_engine.progress_coordinator import ProgressCoordinator

PROGRESS_COLUMNS = ("correct_count", "wrong_count", "mastery_level", "last_practiced")


class FakeClock:
    """Clock returning a controllable instant"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeStore:
    """In-memory RemoteStore recording every call"""

    def __init__(self):
        self.progress: dict[tuple[str, int], dict[str, Any]] = {}
        self.sessions: dict[str, dict[str, Any]] = {}
        self.reviews: list[dict[str, Any]] = []
        self.calls: list[tuple] = []
        self.available = True
        self.failing_words: set[int] = set()
        self.failing_sessions: set[str] = set()
        self._next_session = 0

    def _check_available(self):
        if not self.available:
            raise StoreUnavailableError("store unreachable")

    async def upsert_progress(self, user_id, word_id, fields):
        self.calls.append(("upsert_progress", user_id, word_id, dict(fields)))
        self._check_available()
        if word_id in self.failing_words:
            raise StoreUnavailableError(f"write rejected for word {word_id}")
        record = {"user_id": user_id, "word_id": word_id}
        record.update({name: fields[name] for name in PROGRESS_COLUMNS})
        self.progress[(user_id, word_id)] = record
        return dict(record)

    async def upsert_session(self, session_id, fields):
        self.calls.append(("upsert_session", session_id, dict(fields)))
        self._check_available()
        if session_id in self.failing_sessions:
            raise StoreUnavailableError(f"write rejected for session {session_id}")
        record = self.sessions.setdefault(session_id, {"id": session_id})
        record.update(fields)
        return dict(record)

    async def query_progress(self, user_id):
        self.calls.append(("query_progress", user_id))
        self._check_available()
        return [dict(row) for (owner, _), row in self.progress.items() if owner == user_id]

    async def insert_session(self, user_id, direction, started_at):
        self.calls.append(("insert_session", user_id, direction))
        self._check_available()
        self._next_session += 1
        session_id = f"remote-{self._next_session}"
        self.sessions[session_id] = {
            "id": session_id,
            "user_id": user_id,
            "learning_direction": direction,
            "started_at": started_at.isoformat(),
        }
        return session_id

    async def delete_progress(self, user_id, word_ids=None):
        self.calls.append(("delete_progress", user_id, word_ids))
        self._check_available()
        keys = [
            key
            for key in self.progress
            if key[0] == user_id and (word_ids is None or key[1] in word_ids)
        ]
        for key in keys:
            del self.progress[key]
        return len(keys)

    async def insert_review(self, user_id, fields):
        self.calls.append(("insert_review", user_id, dict(fields)))
        self._check_available()
        self.reviews.append({"user_id": user_id, **fields})
        return len(self.reviews)

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def now():
    return datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def clock(now):
    return FakeClock(now)


@pytest.fixture
def settings(tmp_path):
    """Test settings"""
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'progress.db'}",
        sync_retry_interval=0,
    )


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def connectivity():
    return ConnectivityMonitor(initially_online=True)


@pytest.fixture
def coordinator(store, connectivity, settings, clock):
    return ProgressCoordinator(
        user_id="user-1",
        store=store,
        connectivity=connectivity,
        settings=settings,
        clock=clock,
    )
