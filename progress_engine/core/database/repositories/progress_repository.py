"""
Progress repository for word progress and review history operations
"""

import logging
import sqlite3
from datetime import UTC, datetime
from typing import Any

from ....exceptions import PersistenceError
from ..connection import DatabaseConnection
from ..models import ProgressRecord, ReviewHistoryRecord

logger = logging.getLogger(__name__)

PROGRESS_FIELDS = ("correct_count", "wrong_count", "mastery_level", "last_practiced")
REVIEW_FIELDS = (
    "word_id",
    "correct",
    "response_time_ms",
    "difficulty_rating",
    "previous_level",
    "new_level",
    "review_date",
)


class ProgressRepository:
    """Repository for word progress and review history operations"""

    def __init__(self, db_connection: DatabaseConnection):
        self.db_connection = db_connection

    def upsert_progress(
        self, user_id: str, word_id: int, fields: dict[str, Any]
    ) -> ProgressRecord:
        """Insert or overwrite progress for (user_id, word_id)"""
        missing = [name for name in PROGRESS_FIELDS if name not in fields]
        if missing:
            raise ValueError(f"Missing progress fields: {', '.join(missing)}")

        try:
            with self.db_connection.get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO user_progress (
                        user_id, word_id, correct_count, wrong_count,
                        mastery_level, last_practiced, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(user_id, word_id) DO UPDATE SET
                        correct_count = excluded.correct_count,
                        wrong_count = excluded.wrong_count,
                        mastery_level = excluded.mastery_level,
                        last_practiced = excluded.last_practiced,
                        updated_at = excluded.updated_at
                    """,
                    (
                        user_id,
                        word_id,
                        fields["correct_count"],
                        fields["wrong_count"],
                        fields["mastery_level"],
                        fields["last_practiced"],
                        datetime.now(UTC),
                    ),
                )
                cursor = conn.execute(
                    "SELECT * FROM user_progress WHERE user_id = ? AND word_id = ?",
                    (user_id, word_id),
                )
                row = cursor.fetchone()
                conn.commit()
                return dict(row)
        except sqlite3.Error as e:
            logger.error(f"Error upserting progress for user {user_id}, word {word_id}: {e}")
            raise PersistenceError(f"Failed to upsert progress: {e}") from e

    def query_progress(self, user_id: str) -> list[ProgressRecord]:
        """Get all progress rows of a user"""
        try:
            with self.db_connection.get_connection() as conn:
                cursor = conn.execute(
                    "SELECT * FROM user_progress WHERE user_id = ? ORDER BY word_id",
                    (user_id,),
                )
                return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            logger.error(f"Error querying progress for user {user_id}: {e}")
            raise PersistenceError(f"Failed to query progress: {e}") from e

    def delete_progress(self, user_id: str, word_ids: list[int] | None = None) -> int:
        """Delete progress of a user, optionally only for the given words"""
        try:
            with self.db_connection.get_connection() as conn:
                if word_ids is None:
                    cursor = conn.execute(
                        "DELETE FROM user_progress WHERE user_id = ?", (user_id,)
                    )
                else:
                    if not word_ids:
                        return 0
                    placeholders = ", ".join("?" for _ in word_ids)
                    cursor = conn.execute(
                        f"DELETE FROM user_progress WHERE user_id = ? AND word_id IN ({placeholders})",  # noqa: S608  # Safe: only placeholders
                        (user_id, *word_ids),
                    )

                conn.commit()
                logger.info(f"Deleted {cursor.rowcount} progress rows for user {user_id}")
                return cursor.rowcount
        except sqlite3.Error as e:
            logger.error(f"Error deleting progress: {e}")
            raise PersistenceError(f"Failed to delete progress: {e}") from e

    def insert_review(self, user_id: str, fields: dict[str, Any]) -> int:
        """Add a review history record"""
        columns = [name for name in REVIEW_FIELDS if fields.get(name) is not None]
        values = [fields[name] for name in columns]

        try:
            with self.db_connection.get_connection() as conn:
                cursor = conn.execute(
                    f"""
                    INSERT INTO review_history (user_id, {", ".join(columns)})
                    VALUES (?, {", ".join("?" for _ in columns)})
                    """,  # noqa: S608  # Safe: columns come from REVIEW_FIELDS
                    (user_id, *values),
                )
                conn.commit()
                return cursor.lastrowid
        except sqlite3.Error as e:
            logger.error(f"Error inserting review history: {e}")
            raise PersistenceError(f"Failed to insert review: {e}") from e

    def get_review_history(
        self, user_id: str, word_id: int | None = None, limit: int = 100
    ) -> list[ReviewHistoryRecord]:
        """Get review history for user or specific word"""
        try:
            with self.db_connection.get_connection() as conn:
                if word_id is not None:
                    cursor = conn.execute(
                        """
                        SELECT * FROM review_history
                        WHERE user_id = ? AND word_id = ?
                        ORDER BY review_date DESC, id DESC
                        LIMIT ?
                        """,
                        (user_id, word_id, limit),
                    )
                else:
                    cursor = conn.execute(
                        """
                        SELECT * FROM review_history
                        WHERE user_id = ?
                        ORDER BY review_date DESC, id DESC
                        LIMIT ?
                        """,
                        (user_id, limit),
                    )

                return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            logger.error(f"Error getting review history: {e}")
            raise PersistenceError(f"Failed to get review history: {e}") from e
