"""
In-memory progress store for the current user
"""

import logging
from collections.abc import Iterable

from ...models import WordProgress

logger = logging.getLogger(__name__)


class ProgressStore:
    """Authoritative in-memory view of one user's progress per word"""

    def __init__(self, user_id: str | None = None):
        self._user_id = user_id
        self._progress: dict[int, WordProgress] = {}

    @property
    def user_id(self) -> str | None:
        return self._user_id

    def bind(self, user_id: str | None) -> None:
        """Scope the store to another identity, dropping data of the previous one"""
        if user_id == self._user_id:
            return

        logger.info(f"Rebinding progress store from {self._user_id} to {user_id}")
        self._user_id = user_id
        self.clear()

    def get(self, word_id: int) -> WordProgress | None:
        """Get progress for a word"""
        return self._progress.get(word_id)

    def upsert(self, progress: WordProgress) -> WordProgress:
        """Insert or replace progress for a word"""
        if self._user_id is None:
            raise ValueError("Cannot store progress without an identity")
        if progress.user_id is not None and progress.user_id != self._user_id:
            raise ValueError(
                f"Progress for user {progress.user_id} cannot be stored for {self._user_id}"
            )

        progress.user_id = self._user_id
        self._progress[progress.word_id] = progress
        return progress

    def replace_all(self, records: Iterable[WordProgress]) -> None:
        """Replace the whole store, used when rehydrating"""
        self._progress = {}
        for progress in records:
            self.upsert(progress)

    def remove(self, word_id: int) -> bool:
        """Remove progress for a word"""
        return self._progress.pop(word_id, None) is not None

    def snapshot(self) -> dict[int, WordProgress]:
        """Shallow copy of the current progress mapping"""
        return dict(self._progress)

    def clear(self) -> None:
        """Drop all progress"""
        self._progress = {}

    def __len__(self) -> int:
        return len(self._progress)

    def __contains__(self, word_id: object) -> bool:
        return word_id in self._progress
