"""Click event schema."""
from __future__ import annotations

import hashlib
from dataclasses import dataclass, asdict
from datetime import datetime, timezone


def hash_ip(ip: str, salt: str) -> str:
    """Salted SHA-256 of the client IP, truncated to 16 hex chars. Raw IPs are never stored."""
    return hashlib.sha256(f"{ip}{salt or 'default-salt'}".encode()).hexdigest()[:16]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ClickEvent:
    """One accepted redirect. Immutable once created."""
    network: str
    deal_id: str
    ip_hash: str
    timestamp: str
    user_agent: str = "unknown"
    referrer: str = "direct"

    @classmethod
    def from_ms(cls, now_ms: int, **kwargs) -> ClickEvent:
        ts = datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc)
        return cls(timestamp=ts.isoformat(timespec="milliseconds").replace("+00:00", "Z"), **kwargs)

    def day(self) -> str:
        """UTC calendar day (YYYY-MM-DD) of the event timestamp."""
        try:
            ts = datetime.fromisoformat(self.timestamp.replace("Z", "+00:00"))
        except ValueError:
            return self.timestamp[:10]
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts.astimezone(timezone.utc).strftime("%Y-%m-%d")

    def to_log_entry(self) -> dict:
        """Compact shape stored in the raw ``tt_clicks`` log."""
        return {
            "ts": self.timestamp,
            "id": self.deal_id,
            "network": self.network,
            "referrer": self.referrer,
            "ua": self.user_agent,
            "ipHash": self.ip_hash,
        }

    def to_dict(self) -> dict:
        return asdict(self)
