"""GET /resolve — follow a shortlink and report what it points at."""
from __future__ import annotations

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from config.settings import settings
from tradetrends.api.deps import get_http_client
from tradetrends.services.url_resolver import HostNotAllowed, InvalidURL, resolve_metadata

logger = logging.getLogger(__name__)
router = APIRouter(tags=["resolve"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@router.get("/resolve")
async def resolve(
    url: Optional[str] = None,
    client: httpx.AsyncClient = Depends(get_http_client),
):
    try:
        meta = await resolve_metadata(client, url, settings.RESOLVE_ALLOWED_HOSTS)
    except (InvalidURL, HostNotAllowed) as e:
        return JSONResponse({"ok": False, "error": str(e)}, status_code=400, headers=CORS_HEADERS)
    except Exception:
        logger.exception("Resolve failed for %s", url)
        return JSONResponse(
            {"ok": False, "error": "Failed to resolve URL"}, status_code=500, headers=CORS_HEADERS,
        )
    return JSONResponse(meta.to_dict(), headers=CORS_HEADERS)
