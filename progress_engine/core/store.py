"""
Contract of the durable progress store and its SQLite implementation
"""

import asyncio
from datetime import datetime
from typing import Any, Protocol

from .database.database_manager import DatabaseManager


class RemoteStore(Protocol):
    """Durable store reached over the network"""

    async def upsert_progress(
        self, user_id: str, word_id: int, fields: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def upsert_session(
        self, session_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def query_progress(self, user_id: str) -> list[dict[str, Any]]: ...

    async def insert_session(
        self, user_id: str, direction: str, started_at: datetime
    ) -> str: ...

    async def delete_progress(
        self, user_id: str, word_ids: list[int] | None = None
    ) -> int: ...

    async def insert_review(self, user_id: str, fields: dict[str, Any]) -> Any: ...


class SQLiteRemoteStore:
    """RemoteStore backed by the local SQLite database"""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    async def _run(self, func, *args):
        # Repositories raise PersistenceError for database failures
        return await asyncio.to_thread(func, *args)

    async def upsert_progress(
        self, user_id: str, word_id: int, fields: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._run(self.db_manager.upsert_progress, user_id, word_id, fields)

    async def upsert_session(
        self, session_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._run(self.db_manager.upsert_session, session_id, fields)

    async def query_progress(self, user_id: str) -> list[dict[str, Any]]:
        return await self._run(self.db_manager.query_progress, user_id)

    async def insert_session(
        self, user_id: str, direction: str, started_at: datetime
    ) -> str:
        return await self._run(
            self.db_manager.insert_session, user_id, direction, started_at
        )

    async def delete_progress(
        self, user_id: str, word_ids: list[int] | None = None
    ) -> int:
        return await self._run(self.db_manager.delete_progress, user_id, word_ids)

    async def insert_review(self, user_id: str, fields: dict[str, Any]) -> int:
        return await self._run(self.db_manager.insert_review, user_id, fields)
