"""Startup validation — catch misconfigurations before the app serves traffic."""
from __future__ import annotations

import logging
import sys

from config.settings import DEFAULT_LOOP_COOKIE_SECRET, DEFAULT_SALT, settings
from tradetrends.services.redirect import hostname_of
from tradetrends.storage import select_backend

logger = logging.getLogger(__name__)


def validate_settings() -> list[str]:
    """Validate configuration. Returns list of warnings (empty = all good).

    Raises SystemExit for critical misconfigurations in production.
    """
    warnings: list[str] = []
    is_prod = settings.is_production

    # Critical: IP hashes are only as private as the salt
    if is_prod and settings.TT_SALT == DEFAULT_SALT:
        logger.critical("TT_SALT is still the default! Set a real salt for production.")
        sys.exit(1)

    if is_prod and settings.LOOP_COOKIE_SECRET == DEFAULT_LOOP_COOKIE_SECRET:
        logger.critical("LOOP_COOKIE_SECRET is still the default! Set a real secret for production.")
        sys.exit(1)

    if is_prod and "*" in settings.CORS_ORIGINS:
        warnings.append("CORS_ORIGINS is set to * — restrict in production")

    if not settings.ADMIN_API_KEY:
        warnings.append("ADMIN_API_KEY not set — trend refresh and incident log disabled")

    if is_prod and select_backend() == "file":
        warnings.append("File storage in production — state will not survive redeploys")

    site_host = hostname_of(settings.SITE_URL)
    if site_host and site_host not in settings.FORBIDDEN_HOSTS:
        warnings.append(f"FORBIDDEN_HOSTS does not list {site_host}; the redirect resolver adds it anyway")

    for w in warnings:
        logger.warning("⚠️  %s", w)

    if not warnings:
        logger.info("✅ All startup checks passed")

    return warnings
