"""Read-modify-write with bounded retries.

This is best-effort optimistic concurrency, not a transaction. The stores have
no compare-and-swap token, so two concurrent ``atomic_update`` calls on the
same key can both read the same base document and one of the writes is lost.
That is acceptable for approximate analytics counters and rate-limit
bookkeeping; do not build anything that needs exact counts on top of it.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import random
from typing import Any, Awaitable, Callable, Union

from tradetrends.errors import StorageExhaustedError
from tradetrends.storage.base import Document, KeyValueStore

logger = logging.getLogger(__name__)

UpdateFn = Callable[[Any], Union[Document, Awaitable[Document]]]

RETRY_BASE_SECONDS = 0.05
RETRY_JITTER_SECONDS = 0.1


def _retry_delay() -> float:
    return RETRY_BASE_SECONDS + random.random() * RETRY_JITTER_SECONDS


async def atomic_update(
    store: KeyValueStore,
    key: str,
    update_fn: UpdateFn,
    max_retries: int = 3,
) -> Document:
    """Apply ``update_fn`` to the current document (``{}`` if absent) and write it back.

    A failed ``set`` or an exception inside ``update_fn`` counts as a failed
    attempt. Makes exactly ``max_retries`` attempts with a jittered 50-150ms
    pause between them, then raises ``StorageExhaustedError``.
    """
    for attempt in range(1, max_retries + 1):
        try:
            current = await store.get(key)
            if current is None:
                current = {}
            updated = update_fn(current)
            if inspect.isawaitable(updated):
                updated = await updated
            if await store.set(key, updated):
                return updated
            logger.warning("Atomic update of %s: write rejected (attempt %d/%d)", key, attempt, max_retries)
        except Exception:
            logger.exception("Atomic update attempt %d/%d for %s failed", attempt, max_retries, key)
        if attempt < max_retries:
            await asyncio.sleep(_retry_delay())
    raise StorageExhaustedError(key, max_retries)
