"""Operational endpoints: emergency flags and the incident log."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from tradetrends.auth import AuthContext, get_auth_context, require_admin
from tradetrends.api.deps import get_flags_reader, get_incident_sink
from tradetrends.services.flags import FlagsReader
from tradetrends.services.incidents import IncidentSink

router = APIRouter(prefix="/api", tags=["admin"])


@router.get("/flags")
async def get_flags(reader: FlagsReader = Depends(get_flags_reader)):
    """Current emergency flags, read fresh on every call."""
    return reader.read().to_dict()


@router.get("/incidents")
async def get_incidents(
    limit: int = Query(50, ge=1, le=1000),
    auth: AuthContext = Depends(get_auth_context),
    sink: IncidentSink = Depends(get_incident_sink),
):
    require_admin(auth)
    items = await sink.recent(limit)
    return {"incidents": items, "count": len(items)}
