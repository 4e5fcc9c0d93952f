"""Incident reporting for redirect failures (self-redirects, loops, canary failures)."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum

from config.settings import settings
from tradetrends.errors import StorageError
from tradetrends.models.click import utc_now_iso
from tradetrends.storage import KeyValueStore, atomic_update

logger = logging.getLogger(__name__)

INCIDENTS_KEY = "incidents"
MAX_INCIDENTS = 1000


class IncidentSeverity(str, Enum):
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


@dataclass
class Incident:
    type: str
    severity: IncidentSeverity
    description: str
    context: dict = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["severity"] = self.severity.value
        return data


class IncidentSink:
    """Logs incidents, keeps the last ``MAX_INCIDENTS`` in storage and forwards criticals to Sentry."""

    def __init__(self, store: KeyValueStore | None):
        self.store = store

    async def report(
        self,
        type: str,
        severity: IncidentSeverity,
        description: str,
        **context,
    ) -> Incident:
        incident = Incident(type=type, severity=severity, description=description, context=context)
        level = logging.ERROR if severity == IncidentSeverity.CRITICAL else logging.WARNING
        logger.log(level, "Incident %s: %s %s", type, description, context)

        if self.store is not None:
            def append(doc: dict) -> dict:
                items = doc.get("incidents") if isinstance(doc.get("incidents"), list) else []
                items.append(incident.to_dict())
                return {"incidents": items[-MAX_INCIDENTS:], "lastUpdated": incident.timestamp}

            try:
                await atomic_update(self.store, INCIDENTS_KEY, append)
            except StorageError as e:
                logger.error("Failed to persist incident %s: %s", type, e)

        if severity == IncidentSeverity.CRITICAL and settings.SENTRY_DSN:
            try:
                import sentry_sdk
                sentry_sdk.capture_message(
                    description,
                    level="error",
                    tags={"incident_type": type},
                    contexts={"incident": context},
                )
            except Exception:
                logger.debug("Sentry forwarding failed", exc_info=True)
        return incident

    async def recent(self, limit: int = 50) -> list[dict]:
        if self.store is None:
            return []
        doc = await self.store.get(INCIDENTS_KEY)
        items = doc.get("incidents") if isinstance(doc, dict) else None
        return list(items[-limit:]) if isinstance(items, list) else []
