"""
Unified database manager that coordinates all repositories
"""

from datetime import datetime
from typing import Any

from .connection import DatabaseConnection
from .models import ProgressRecord, ReviewHistoryRecord, SessionRecord
from .repositories.progress_repository import ProgressRepository
from .repositories.session_repository import SessionRepository


class DatabaseManager:
    """Unified database manager that coordinates all repositories"""

    def __init__(self, db_path: str | None = None):
        self.db_connection = DatabaseConnection(db_path)
        self.progress_repo = ProgressRepository(self.db_connection)
        self.session_repo = SessionRepository(self.db_connection)

    def init_database(self) -> None:
        """Initialize database tables and indexes"""
        self.db_connection.init_database()

    # Progress methods
    def upsert_progress(
        self, user_id: str, word_id: int, fields: dict[str, Any]
    ) -> ProgressRecord:
        """Insert or overwrite progress for a word"""
        return self.progress_repo.upsert_progress(user_id, word_id, fields)

    def query_progress(self, user_id: str) -> list[ProgressRecord]:
        """Get all progress of a user"""
        return self.progress_repo.query_progress(user_id)

    def delete_progress(self, user_id: str, word_ids: list[int] | None = None) -> int:
        """Delete progress of a user"""
        return self.progress_repo.delete_progress(user_id, word_ids)

    # Review history methods
    def insert_review(self, user_id: str, fields: dict[str, Any]) -> int:
        """Add a review history record"""
        return self.progress_repo.insert_review(user_id, fields)

    def get_review_history(
        self, user_id: str, word_id: int | None = None, limit: int = 100
    ) -> list[ReviewHistoryRecord]:
        """Get review history for user or specific word"""
        return self.progress_repo.get_review_history(user_id, word_id, limit)

    # Session methods
    def insert_session(
        self, user_id: str, direction: str, started_at: datetime | None = None
    ) -> str:
        """Create a learning session"""
        return self.session_repo.insert_session(user_id, direction, started_at)

    def upsert_session(self, session_id: str, fields: dict[str, Any]) -> SessionRecord:
        """Insert or update a learning session"""
        return self.session_repo.upsert_session(session_id, fields)

    def get_session(self, session_id: str) -> SessionRecord | None:
        """Get a learning session"""
        return self.session_repo.get_session(session_id)

    def get_user_sessions(self, user_id: str, limit: int = 50) -> list[SessionRecord]:
        """Get recent sessions of a user"""
        return self.session_repo.get_user_sessions(user_id, limit)

    def get_connection(self):
        """Get database connection for direct SQL access in tests"""
        return self.db_connection.get_connection()


# Global instance
_db_manager = None


def get_db_manager(db_path: str | None = None) -> DatabaseManager:
    """Get global database manager instance"""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager(db_path)
    return _db_manager
