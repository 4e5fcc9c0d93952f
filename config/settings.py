"""App settings — loaded from environment."""
from __future__ import annotations

import os
from dotenv import load_dotenv

load_dotenv()


DEFAULT_SALT = "default-salt"
DEFAULT_LOOP_COOKIE_SECRET = "tradetrends-dev-loop-secret"


def _host_list(name: str, default: str) -> list[str]:
    return [h.strip().lower() for h in os.getenv(name, default).split(",") if h.strip()]


class Settings:
    # Environment
    APP_ENV = os.getenv("APP_ENV", "development")
    SITE_URL = os.getenv("SITE_URL", "https://tradetrend.netlify.app")

    # Storage: "auto", "database" or "file"
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "auto").lower()
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///tradetrends.db")
    STATE_DIR = os.getenv("STATE_DIR", ".state")

    # Deal catalogs (amazon.json / travel.json) when not present in storage
    DATA_DIR = os.getenv("DATA_DIR", "public/data")

    # Privacy: salt for hashing client IPs
    TT_SALT = os.getenv("TT_SALT", DEFAULT_SALT)

    # Hosts we must never redirect to (our own site, loopback)
    FORBIDDEN_HOSTS = _host_list(
        "FORBIDDEN_HOSTS",
        "tradetrend.netlify.app,localhost,127.0.0.1,0.0.0.0,::1",
    )
    # Hosts accepted for the ?u= direct-URL fallback on /go
    DIRECT_URL_ALLOWED_HOSTS = _host_list(
        "DIRECT_URL_ALLOWED_HOSTS",
        "amazon.com,amzn.to,booking.com,expedia.com,hotels.com,airbnb.com",
    )
    # Hosts the /resolve metadata endpoint will fetch
    RESOLVE_ALLOWED_HOSTS = _host_list(
        "RESOLVE_ALLOWED_HOSTS",
        "amazon.com,amzn.to,a.co,booking.com,expedia.com,hotels.com,airbnb.com",
    )

    # Kill switch
    EMERGENCY_FLAGS_PATH = os.getenv("EMERGENCY_FLAGS_PATH", ".ai/business.json")

    # Rate limiting (per hashed IP, sliding window)
    RATE_LIMIT_MAX_CLICKS = int(os.getenv("RATE_LIMIT_MAX_CLICKS", "30"))
    RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "600"))
    RATE_LIMIT_MAX_IDENTITIES = int(os.getenv("RATE_LIMIT_MAX_IDENTITIES", "1000"))
    # Proxies in front of us that append to X-Forwarded-For (0 = use the socket peer)
    TRUSTED_PROXY_HOPS = int(os.getenv("TRUSTED_PROXY_HOPS", "1"))

    # Redirect loop detection
    LOOP_WINDOW_SECONDS = float(os.getenv("LOOP_WINDOW_SECONDS", "5"))
    LOOP_MAX_HITS = int(os.getenv("LOOP_MAX_HITS", "3"))
    LOOP_COOKIE_NAME = os.getenv("LOOP_COOKIE_NAME", "tt_go")
    LOOP_COOKIE_SECRET = os.getenv("LOOP_COOKIE_SECRET", DEFAULT_LOOP_COOKIE_SECRET)

    # Click recording
    CLICK_WRITE_TIMEOUT_SECONDS = float(os.getenv("CLICK_WRITE_TIMEOUT_SECONDS", "5"))
    CLICK_LOG_MAX = int(os.getenv("CLICK_LOG_MAX", "10000"))

    # Trends snapshot freshness
    TRENDS_MAX_AGE_HOURS = float(os.getenv("TRENDS_MAX_AGE_HOURS", "6"))

    # Admin API key (for protected admin endpoints like trends refresh)
    ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "")

    # CORS origins (comma-separated, or * for dev)
    CORS_ORIGINS = [
        o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")
    ]

    # Observability
    SENTRY_DSN = os.getenv("SENTRY_DSN", "")
    SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
    SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))

    # Logging
    LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() in ("production", "prod")


settings = Settings()
