"""Cookie-based redirect loop detection.

The token from the previous /go response carries ``{id, time, hits}``:
the deal last redirected to, when, and how many consecutive same-deal
redirects happened inside the window. The request that would be the
``max_hits``-th consecutive redirect to the same deal within
``window_seconds`` is classified as a loop.

This is a heuristic. It only sees one client's cookie and one short window:
clients that drop cookies, slower loops, and loops spanning sessions all go
unnoticed.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from config.settings import settings

logger = logging.getLogger(__name__)


class LoopVerdict(str, Enum):
    NORMAL = "normal"
    LOOP = "loop"


@dataclass(frozen=True)
class LoopState:
    id: str
    time: int  # epoch ms
    hits: int = 1


@dataclass(frozen=True)
class LoopCheck:
    verdict: LoopVerdict
    state: LoopState  # state to hand back to the client on NORMAL


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64url_decode(s: str) -> bytes:
    s += "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode(s)


class LoopDetector:
    def __init__(
        self,
        secret: str | None = None,
        window_seconds: float | None = None,
        max_hits: int | None = None,
    ):
        self._key = (secret or settings.LOOP_COOKIE_SECRET).encode()
        self.window_ms = int((window_seconds if window_seconds is not None else settings.LOOP_WINDOW_SECONDS) * 1000)
        self.max_hits = max_hits or settings.LOOP_MAX_HITS

    @property
    def cookie_max_age(self) -> int:
        return max(1, round(self.window_ms / 1000))

    def _sign(self, body: str) -> str:
        return hmac.new(self._key, body.encode(), hashlib.sha256).hexdigest()[:16]

    def encode(self, state: LoopState) -> str:
        body = _b64url(json.dumps({"id": state.id, "time": state.time, "hits": state.hits},
                                  separators=(",", ":")).encode())
        return f"{body}.{self._sign(body)}"

    def decode(self, token: str | None) -> Optional[LoopState]:
        """Parse a token; anything tampered, truncated or malformed reads as no token."""
        if not token or "." not in token:
            return None
        body, sig = token.rsplit(".", 1)
        if not hmac.compare_digest(sig, self._sign(body)):
            return None
        try:
            data = json.loads(_b64url_decode(body))
            return LoopState(id=str(data["id"]), time=int(data["time"]), hits=max(1, int(data.get("hits", 1))))
        except (ValueError, KeyError, TypeError):
            return None

    def check(self, deal_id: str, token: str | None, now_ms: int) -> LoopCheck:
        prior = self.decode(token)
        hits = 1
        if prior is not None and prior.id == deal_id and 0 <= now_ms - prior.time < self.window_ms:
            hits = prior.hits + 1
        state = LoopState(id=deal_id, time=now_ms, hits=hits)
        if hits >= self.max_hits:
            logger.warning("Redirect loop detected for deal %s (%d hits in %dms)", deal_id, hits, self.window_ms)
            return LoopCheck(LoopVerdict.LOOP, state)
        return LoopCheck(LoopVerdict.NORMAL, state)
