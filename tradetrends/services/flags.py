"""Emergency flags (kill switch).

``forceDirect`` tells the rendering layer to link straight to affiliate URLs
instead of ``/go``. ``disableGo`` tells it to stop emitting ``/go`` links
entirely. ``/go`` itself keeps serving and keeps its loop and self-redirect
protections whatever the flags say.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from config.settings import settings
from tradetrends.models.flags import EmergencyFlags

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    return raw.strip().lower() in _TRUTHY


class FlagsReader:
    def __init__(self, path: str | Path | None = None):
        self.path = Path(path or settings.EMERGENCY_FLAGS_PATH)

    def read(self) -> EmergencyFlags:
        """File flags overridden by FORCE_DIRECT / DISABLE_GO env vars. Missing or corrupt file means all off."""
        data: dict = {}
        try:
            config = json.loads(self.path.read_text(encoding="utf-8"))
            if isinstance(config, dict) and isinstance(config.get("emergencyFlags"), dict):
                data = config["emergencyFlags"]
        except FileNotFoundError:
            pass
        except (OSError, ValueError):
            logger.warning("Could not load emergency flags from %s", self.path, exc_info=True)

        flags = EmergencyFlags(
            forceDirect=data.get("forceDirect") is True,
            disableGo=data.get("disableGo") is True,
        )
        force = _env_flag("FORCE_DIRECT")
        disable = _env_flag("DISABLE_GO")
        if force is not None:
            flags.force_direct = force
        if disable is not None:
            flags.disable_go = disable
        return flags


def enable_kill_switch(path: str | Path | None = None) -> bool:
    """Set ``emergencyFlags.forceDirect = true`` in the business config file."""
    path = Path(path or settings.EMERGENCY_FLAGS_PATH)
    try:
        config = json.loads(path.read_text(encoding="utf-8")) if path.exists() else {}
        if not isinstance(config, dict):
            config = {}
        flags = config.get("emergencyFlags")
        if not isinstance(flags, dict):
            flags = {}
        flags["forceDirect"] = True
        config["emergencyFlags"] = flags
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(config, indent=2), encoding="utf-8")
    except (OSError, ValueError):
        logger.exception("Failed to activate kill switch")
        return False
    logger.critical("KILL SWITCH ACTIVATED: forceDirect = true")
    return True
