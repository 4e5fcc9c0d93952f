"""Storage adapter: durable database backend (production) or JSON files (local dev)."""
from __future__ import annotations

import logging

from config.settings import settings
from tradetrends.storage.atomic import atomic_update
from tradetrends.storage.base import Document, KeyValueStore, MemoryStore
from tradetrends.storage.database import DatabaseStore
from tradetrends.storage.file import FileStore

logger = logging.getLogger(__name__)

__all__ = [
    "Document", "KeyValueStore", "MemoryStore", "DatabaseStore", "FileStore",
    "atomic_update", "create_store", "select_backend",
]


def select_backend(backend: str | None = None, production: bool | None = None) -> str:
    """Resolve "auto" to a concrete backend name."""
    backend = (backend or settings.STORAGE_BACKEND or "auto").lower()
    if backend in ("database", "file"):
        return backend
    if backend != "auto":
        logger.warning("Unknown STORAGE_BACKEND=%r, using auto selection", backend)
    if production is None:
        production = settings.is_production
    return "database" if production else "file"


def create_store(backend: str | None = None) -> KeyValueStore:
    """Build the store selected by the environment.

    Falls back to file storage if the database engine cannot be created.
    """
    chosen = select_backend(backend)
    if chosen == "database":
        try:
            from tradetrends.db.engine import get_session_factory
            store = DatabaseStore(get_session_factory())
            logger.info("Using database storage")
            return store
        except Exception:
            logger.warning("Database storage not available, falling back to file storage", exc_info=True)
    logger.info("Using file-based storage (%s)", settings.STATE_DIR)
    return FileStore(settings.STATE_DIR)
