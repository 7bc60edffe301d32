"""
Session repository for learning session operations
"""

import logging
import sqlite3
import uuid
from datetime import UTC, datetime
from typing import Any

from ....exceptions import PersistenceError
from ..connection import DatabaseConnection
from ..models import SessionRecord

logger = logging.getLogger(__name__)

SESSION_FIELDS = (
    "user_id",
    "learning_direction",
    "started_at",
    "ended_at",
    "words_studied",
    "correct_answers",
)
REQUIRED_SESSION_FIELDS = ("user_id", "learning_direction", "started_at")


class SessionRepository:
    """Repository for learning session operations"""

    def __init__(self, db_connection: DatabaseConnection):
        self.db_connection = db_connection

    def insert_session(
        self, user_id: str, direction: str, started_at: datetime | None = None
    ) -> str:
        """Create a learning session and return its ID, started now unless given"""
        session_id = str(uuid.uuid4())
        started_at = started_at or datetime.now(UTC)

        try:
            with self.db_connection.get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO learning_sessions (id, user_id, learning_direction, started_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (session_id, user_id, direction, started_at.isoformat()),
                )
                conn.commit()
                logger.info(f"Created learning session {session_id} for user {user_id}")
                return session_id
        except sqlite3.Error as e:
            logger.error(f"Error creating learning session: {e}")
            raise PersistenceError(f"Failed to insert session: {e}") from e

    def upsert_session(self, session_id: str, fields: dict[str, Any]) -> SessionRecord:
        """Insert or update a learning session keyed by its ID"""
        columns = [name for name in SESSION_FIELDS if name in fields]
        if not columns:
            raise ValueError("No session fields to write")

        values = [fields[name] for name in columns]

        try:
            with self.db_connection.get_connection() as conn:
                if all(name in columns for name in REQUIRED_SESSION_FIELDS):
                    assignments = ", ".join(f"{name} = excluded.{name}" for name in columns)
                    conn.execute(
                        f"""
                        INSERT INTO learning_sessions (id, {", ".join(columns)})
                        VALUES (?, {", ".join("?" for _ in columns)})
                        ON CONFLICT(id) DO UPDATE SET {assignments}
                        """,  # noqa: S608  # Safe: columns come from SESSION_FIELDS
                        (session_id, *values),
                    )
                else:
                    # NOT NULL columns are missing, so only an existing row can be updated
                    assignments = ", ".join(f"{name} = ?" for name in columns)
                    cursor = conn.execute(
                        f"UPDATE learning_sessions SET {assignments} WHERE id = ?",  # noqa: S608
                        (*values, session_id),
                    )
                    if cursor.rowcount == 0:
                        raise ValueError(
                            f"Session {session_id} does not exist and cannot be created "
                            f"without {', '.join(REQUIRED_SESSION_FIELDS)}"
                        )

                cursor = conn.execute(
                    "SELECT * FROM learning_sessions WHERE id = ?", (session_id,)
                )
                row = cursor.fetchone()
                conn.commit()
                return dict(row)
        except sqlite3.Error as e:
            logger.error(f"Error upserting session {session_id}: {e}")
            raise PersistenceError(f"Failed to upsert session: {e}") from e

    def get_session(self, session_id: str) -> SessionRecord | None:
        """Get a learning session by ID"""
        try:
            with self.db_connection.get_connection() as conn:
                cursor = conn.execute(
                    "SELECT * FROM learning_sessions WHERE id = ?", (session_id,)
                )
                row = cursor.fetchone()
                return dict(row) if row else None
        except sqlite3.Error as e:
            logger.error(f"Error getting session {session_id}: {e}")
            raise PersistenceError(f"Failed to get session: {e}") from e

    def get_user_sessions(self, user_id: str, limit: int = 50) -> list[SessionRecord]:
        """Get the most recent sessions of a user"""
        try:
            with self.db_connection.get_connection() as conn:
                cursor = conn.execute(
                    """
                    SELECT * FROM learning_sessions
                    WHERE user_id = ?
                    ORDER BY started_at DESC
                    LIMIT ?
                    """,
                    (user_id, limit),
                )
                return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            logger.error(f"Error getting sessions for user {user_id}: {e}")
            raise PersistenceError(f"Failed to get sessions: {e}") from e
