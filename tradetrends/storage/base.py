"""Key-value store contract shared by every backend.

``get(key)`` returns a JSON document (dict or list) or ``None``;
``set(key, doc)`` returns ``True`` on success. Neither raises: backend errors
are logged and converted to ``None``/``False`` so callers can treat a broken
store exactly like an empty one. Storage failures are swallowed on purpose;
analytics and rate limiting must never break a redirect.
"""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Union

logger = logging.getLogger(__name__)

Document = Union[dict, list]


def encode_document(value: Any) -> str | None:
    """Serialize to strict JSON. Returns None for anything that is not a JSON object/array."""
    if not isinstance(value, (dict, list)):
        return None
    try:
        return json.dumps(value, indent=2, allow_nan=False)
    except (TypeError, ValueError):
        return None


def decode_document(raw: str | bytes | None) -> Document | None:
    """Parse stored text. Corrupt or non-document data reads as absent."""
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(value, (dict, list)):
        return None
    return value


class KeyValueStore(ABC):
    """Minimal persistent key -> JSON document store."""

    name: str = "abstract"

    @abstractmethod
    async def get(self, key: str) -> Document | None:
        ...

    @abstractmethod
    async def set(self, key: str, value: Document) -> bool:
        ...


class MemoryStore(KeyValueStore):
    """Process-local store for tests and tooling. Values round-trip through JSON like the real backends."""

    name = "memory"

    def __init__(self, initial: dict[str, Document] | None = None):
        self._data: dict[str, str] = {}
        for key, value in (initial or {}).items():
            encoded = encode_document(value)
            if encoded is not None:
                self._data[key] = encoded

    async def get(self, key: str) -> Document | None:
        return decode_document(self._data.get(key))

    async def set(self, key: str, value: Document) -> bool:
        encoded = encode_document(value)
        if encoded is None:
            logger.error("Refusing to store non-JSON document for %s", key)
            return False
        self._data[key] = encoded
        return True

    def keys(self) -> list[str]:
        return sorted(self._data)
