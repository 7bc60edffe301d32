"""
Session tracking for learning sessions
"""

import logging
from datetime import datetime

from ...models import LearningSession

logger = logging.getLogger(__name__)


class SessionTracker:
    """Accumulates review counts for the one open learning session"""

    def __init__(self):
        self._session: LearningSession | None = None

    @property
    def is_open(self) -> bool:
        return self._session is not None

    @property
    def current(self) -> LearningSession | None:
        return self._session

    @property
    def stats(self) -> dict[str, int]:
        """Counters of the open session"""
        if self._session is None:
            return {"words_studied": 0, "correct_answers": 0}
        return {
            "words_studied": self._session.words_studied,
            "correct_answers": self._session.correct_answers,
        }

    def start(
        self,
        session_id: str,
        user_id: str,
        direction: str,
        started_at: datetime,
    ) -> LearningSession:
        """Open a session, replacing any session that was not ended"""
        if self._session is not None:
            logger.warning(
                f"Session {self._session.id} replaced by {session_id} without being ended"
            )

        self._session = LearningSession(
            id=session_id,
            user_id=user_id,
            direction=direction,
            started_at=started_at,
        )
        logger.info(f"Started session {session_id} ({direction}) for user {user_id}")
        return self._session

    def record(self, correct: bool) -> None:
        """Count an answer towards the open session"""
        if self._session is None:
            return

        self._session.words_studied += 1
        if correct:
            self._session.correct_answers += 1

    def end(self, ended_at: datetime) -> LearningSession | None:
        """Close the open session and return its final aggregate"""
        session = self._session
        if session is None:
            return None

        session.ended_at = ended_at
        self._session = None

        logger.info(
            f"Ended session {session.id}: studied={session.words_studied}, "
            f"correct={session.correct_answers}"
        )
        return session

    def abandon(self) -> LearningSession | None:
        """Drop the open session without finalizing it"""
        session, self._session = self._session, None
        if session is not None:
            logger.info(f"Abandoned session {session.id}")
        return session
