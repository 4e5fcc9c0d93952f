"""Local single-process backend: one pretty-printed JSON file per key."""
from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path

from tradetrends.storage.base import Document, KeyValueStore, decode_document, encode_document

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class FileStore(KeyValueStore):
    """Stores ``<key>.json`` under ``state_dir``, creating the directory on first use.

    Not safe across processes: two writers to the same file race with
    last-write-wins. Use ``DatabaseStore`` when more than one instance runs.
    """

    name = "file"

    def __init__(self, state_dir: str | Path):
        self.state_dir = Path(state_dir)

    def path_for(self, key: str) -> Path:
        # "analytics:summary" -> "analytics_summary.json"
        return self.state_dir / f"{_UNSAFE.sub('_', key)}.json"

    def _read(self, key: str) -> Document | None:
        path = self.path_for(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError):
            logger.exception("File read error for %s", key)
            return None
        value = decode_document(raw)
        if value is None:
            logger.warning("Corrupt JSON in %s, treating as absent", path)
        return value

    def _write(self, key: str, encoded: str) -> bool:
        path = self.path_for(key)
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".json.tmp")
            tmp.write_text(encoded, encoding="utf-8")
            tmp.replace(path)
        except OSError:
            logger.exception("File write error for %s", key)
            return False
        return True

    async def get(self, key: str) -> Document | None:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: Document) -> bool:
        encoded = encode_document(value)
        if encoded is None:
            logger.error("Refusing to store non-JSON document for %s", key)
            return False
        return await asyncio.to_thread(self._write, key, encoded)
