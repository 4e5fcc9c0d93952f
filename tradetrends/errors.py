"""Error taxonomy for the redirect/tracking core.

``StorageExhaustedError`` is the only one raised across a component boundary
(by ``atomic_update``). The others are raised inside the ``/go`` orchestrator
by each gate and mapped to a terminal response in one place; they never reach
the HTTP layer.
"""
from __future__ import annotations

from typing import Optional


class TradeTrendsError(Exception):
    """Base class for all service errors."""


class InputError(TradeTrendsError):
    """Missing or invalid query parameters. Handled by a silent fallback."""


class NotFoundError(TradeTrendsError):
    """Unknown or unpublished deal. Handled by a silent fallback."""


class SelfRedirectError(TradeTrendsError):
    """A deal's destination points back at this service."""

    def __init__(self, deal_id: str, destination: str):
        super().__init__(f"Deal {deal_id} redirects to own host: {destination}")
        self.deal_id = deal_id
        self.destination = destination


class LoopDetectedError(TradeTrendsError):
    """The same client bounced through /go for the same deal too quickly."""

    def __init__(self, deal_id: str, hits: int, destination: Optional[str] = None):
        super().__init__(f"Redirect loop on deal {deal_id} ({hits} hits)")
        self.deal_id = deal_id
        self.hits = hits
        self.destination = destination


class RateLimitExceeded(TradeTrendsError):
    """Click budget for an identity is spent for the current window."""

    def __init__(self, identity: str, retry_after: int):
        super().__init__(f"Rate limit exceeded for {identity}")
        self.identity = identity
        self.retry_after = retry_after


class StorageError(TradeTrendsError):
    """A key-value store read or write failed."""


class StorageExhaustedError(StorageError):
    """``atomic_update`` ran out of retries."""

    def __init__(self, key: str, attempts: int):
        super().__init__(f"Failed to update {key} after {attempts} attempts")
        self.key = key
        self.attempts = attempts
