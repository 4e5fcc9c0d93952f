"""Durable multi-instance backend: a ``kv_store`` table behind async SQLAlchemy."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tradetrends.db.tables import Base, KeyValueRow
from tradetrends.storage.base import Document, KeyValueStore, decode_document, encode_document

logger = logging.getLogger(__name__)


class DatabaseStore(KeyValueStore):
    """Shared store for every instance pointed at the same database.

    Each ``set`` replaces the whole document in one transaction; there is no
    version column, so concurrent read-modify-write cycles can still lose an
    update (see ``atomic_update``).
    """

    name = "database"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create_tables(self) -> None:
        async with self._session_factory() as session:
            conn = await session.connection()
            await conn.run_sync(Base.metadata.create_all)
            await session.commit()

    async def get(self, key: str) -> Document | None:
        try:
            async with self._session_factory() as session:
                row = await session.scalar(select(KeyValueRow).where(KeyValueRow.key == key))
                raw = row.value if row is not None else None
        except (SQLAlchemyError, OSError):
            logger.exception("DB get error for %s", key)
            return None
        value = decode_document(raw)
        if raw is not None and value is None:
            logger.warning("Corrupt JSON stored under %s, treating as absent", key)
        return value

    async def set(self, key: str, value: Document) -> bool:
        encoded = encode_document(value)
        if encoded is None:
            logger.error("Refusing to store non-JSON document for %s", key)
            return False
        try:
            async with self._session_factory() as session:
                row = await session.get(KeyValueRow, key)
                if row is None:
                    session.add(KeyValueRow(key=key, value=encoded))
                else:
                    row.value = encoded
                    row.updated_at = datetime.now(timezone.utc)
                await session.commit()
        except (SQLAlchemyError, OSError):
            logger.exception("DB set error for %s", key)
            return False
        return True
