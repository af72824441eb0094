# backend/vn_core/bonuses/conf.py
from __future__ import annotations

from typing import Any

from django.conf import settings

DEFAULTS: dict[str, Any] = {
    "RECALC_LOCK_RETRIES": 3,
    "RECALC_LOCK_RETRY_DELAY": 0.2,
    "ELIGIBLE_VISIT_STATUSES": ("completed", "reviewed"),
    "DEFAULT_DURATION_THRESHOLD_MINUTES": 90,
}


def engine_setting(name: str) -> Any:
    """
    settings.BONUS_ENGINE[name], falling back to DEFAULTS.
    Read on every call so override_settings works in tests.
    """
    if name not in DEFAULTS:
        raise KeyError(f"Unknown BONUS_ENGINE setting: {name}")
    return (getattr(settings, "BONUS_ENGINE", None) or {}).get(name, DEFAULTS[name])


def eligible_statuses() -> tuple[str, ...]:
    return tuple(engine_setting("ELIGIBLE_VISIT_STATUSES"))
