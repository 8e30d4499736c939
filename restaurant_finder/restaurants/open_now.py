from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from .hours import OpeningHoursError, is_open_at
from .models import Restaurant

logger = logging.getLogger(__name__)


def apply_open_now(records: Iterable[Restaurant], now: datetime) -> list[Restaurant]:
    """
    Keep only the restaurants open at ``now``, preserving their order.

    Records whose opening hours cannot be parsed are dropped.
    """
    kept: list[Restaurant] = []
    for record in records:
        try:
            if is_open_at(record.opening_hours, now):
                kept.append(record)
        except OpeningHoursError:
            logger.debug("Excluding %s from open-now results: unparseable hours", record.external_id)
    return kept
