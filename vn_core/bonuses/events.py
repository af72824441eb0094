# backend/vn_core/bonuses/events.py
"""
In-process notifications for receipt aggregation once bonus decisions are
committed. Payloads carry ids and totals only, never model instances.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class BonusEvent(str, Enum):
    MONTH_RECALCULATED = "bonus.month_recalculated"
    VISIT_CALCULATED = "bonus.visit_calculated"


Handler = Callable[[Dict[str, Any]], None]

_registry: Dict[BonusEvent, List[Handler]] = defaultdict(list)


def subscribe(event: BonusEvent | str):
    """
    Decorator registering a handler. Unknown event names raise ValueError
    at registration rather than silently never firing.

        @subscribe(BonusEvent.MONTH_RECALCULATED)
        def refresh_receipt(payload): ...
    """
    key = BonusEvent(event)

    def _decorator(fn: Handler) -> Handler:
        _registry[key].append(fn)
        return fn

    return _decorator


def unsubscribe(event: BonusEvent | str, fn: Handler) -> None:
    handlers = _registry.get(BonusEvent(event), [])
    if fn in handlers:
        handlers.remove(fn)


def publish(event: BonusEvent, payload: Dict[str, Any]) -> None:
    handlers = list(_registry.get(event, []))
    logger.debug("publishing %s to %d handler(s)", event.value, len(handlers))
    for handler in handlers:
        handler(payload)
