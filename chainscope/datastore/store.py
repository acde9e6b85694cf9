"""
Key-value metadata store: gating rules and other JSON documents by key.
"""

import asyncio
import copy
import json
from abc import ABC, abstractmethod
from typing import Any

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chainscope.datastore.models import MetadataRecordDB


class MetadataStore(ABC):
    """JSON documents by string key."""

    @abstractmethod
    async def get(self, key: str) -> Any | None: ...

    @abstractmethod
    async def put(self, key: str, value: Any) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> bool: ...


class InMemoryMetadataStore(MetadataStore):
    """Process-local store; values are deep-copied in and out."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = copy.deepcopy(initial or {})
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            return copy.deepcopy(self._data.get(key))

    async def put(self, key: str, value: Any) -> None:
        async with self._lock:
            self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(key, None) is not None


class SqlMetadataStore(MetadataStore):
    """
    SQLAlchemy-backed store.

    Usage:
        session_factory = await init_db("sqlite+aiosqlite:///chainscope.db")
        store = SqlMetadataStore(session_factory)
        await store.put("gating:vip", rule.model_dump(mode="json"))
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get(self, key: str) -> Any | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(MetadataRecordDB).where(MetadataRecordDB.key == key)
            )
            record = result.scalar_one_or_none()
            if record is None:
                return None
            return json.loads(record.value_json)

    async def put(self, key: str, value: Any) -> None:
        value_json = json.dumps(value)
        async with self.session_factory() as session:
            try:
                result = await session.execute(
                    select(MetadataRecordDB).where(MetadataRecordDB.key == key)
                )
                record = result.scalar_one_or_none()
                if record is None:
                    session.add(MetadataRecordDB(key=key, value_json=value_json))
                else:
                    record.value_json = value_json
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error(f"Failed to store metadata '{key}': {e}")
                raise

    async def delete(self, key: str) -> bool:
        async with self.session_factory() as session:
            try:
                result = await session.execute(
                    delete(MetadataRecordDB).where(MetadataRecordDB.key == key)
                )
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error(f"Failed to delete metadata '{key}': {e}")
                raise
            return result.rowcount > 0
