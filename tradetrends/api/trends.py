"""Trend snapshot endpoints."""
from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from tradetrends.auth import AuthContext, get_auth_context, require_admin
from tradetrends.api.deps import get_http_client, get_store
from tradetrends.services import trends
from tradetrends.storage import KeyValueStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["trends"])


@router.get("/trends")
async def get_trends(store: KeyValueStore = Depends(get_store)):
    """Latest cached snapshot; flagged stale past its max age."""
    return await trends.get_trends(store)


@router.post("/refresh-trends")
async def refresh_trends(
    force: bool = False,
    auth: AuthContext = Depends(get_auth_context),
    store: KeyValueStore = Depends(get_store),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    require_admin(auth)
    try:
        return await trends.refresh_trends(store, client, force=force)
    except Exception as e:
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to refresh trends", "message": str(e)},
        )
