"""
Durable storage for saved searches and push key material.

Every document lives whole under one key. Saved searches are one JSON array:
each mutation reads the full array, changes it in memory and writes the full
array back. There is no version check, so when the daily sweep and a user
create/delete interleave, the later write wins and the earlier change is lost.
"""
import logging
from typing import Any, Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from yardwatch.errors import DependencyUnavailable
from yardwatch.models import KVEntry

logger = logging.getLogger(__name__)

SAVED_SEARCHES_KEY = "saved-searches"
VAPID_KEYS_KEY = "alert-vapid-keys"


class KeyValueStore:
    """JSON documents keyed by name, backed by the kv_entries table"""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def get_json(self, key: str) -> Optional[Any]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(select(KVEntry).where(KVEntry.key == key))
                entry = result.scalar_one_or_none()
                return entry.value if entry else None
        except SQLAlchemyError as e:
            logger.error(f"Store read failed for {key}: {e}")
            raise DependencyUnavailable("Saved-search store unavailable") from e

    async def put_json(self, key: str, value: Any) -> None:
        try:
            async with self.session_maker() as session:
                await session.merge(KVEntry(key=key, value=value))
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Store write failed for {key}: {e}")
            raise DependencyUnavailable("Saved-search store unavailable") from e


class SavedSearchStore:
    """The saved-search collection: read-all, append and replace-all only"""

    def __init__(self, kv: KeyValueStore, key: str = SAVED_SEARCHES_KEY):
        self.kv = kv
        self.key = key

    async def read_all(self) -> List[Dict[str, Any]]:
        saved = await self.kv.get_json(self.key)
        if not isinstance(saved, list):
            return []
        return [s for s in saved if isinstance(s, dict)]

    async def append(self, record: Dict[str, Any]) -> None:
        searches = await self.read_all()
        searches.append(record)
        await self.kv.put_json(self.key, searches)

    async def replace_all(self, records: List[Dict[str, Any]]) -> None:
        await self.kv.put_json(self.key, list(records))
