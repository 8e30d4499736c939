"""
Search execution.

Two strategies share one compiled ``FilterSpec``:

* attribute path: predicates, optional text relevance, sort and pagination
  pushed to the store, with an independent count using the same predicates;
* proximity path: a nearest-first scan bounded by a radius, predicates applied
  inside the scan, and a count over the same radius and predicates.

"Open now" cannot be expressed as a stored predicate. When requested, either
path fetches the ordered superset once, filters it in process and paginates
the filtered sequence, so totals and pages always agree.

Storage failures never reach the caller: they are logged with the spec and
the search answers with an empty page and a zero total.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from zoneinfo import ZoneInfo

from ..config import DEFAULT_SETTINGS, Settings
from .filters import FilterSpec
from .models import Pagination, Restaurant, RestaurantPage
from .open_now import apply_open_now
from .store import RestaurantStore

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
    records: list[Restaurant] = field(default_factory=list)
    total: int = 0

    def to_page(self, spec: FilterSpec) -> RestaurantPage:
        return RestaurantPage(
            count=len(self.records),
            pagination=Pagination(
                total=self.total,
                page=spec.page,
                pages=math.ceil(self.total / spec.limit),
                limit=spec.limit,
            ),
            data=self.records,
        )


def current_time(settings: Settings = DEFAULT_SETTINGS) -> datetime:
    """Wall-clock time in the configured restaurant time zone."""
    return datetime.now(ZoneInfo(settings.timezone))


def _paginate_open_now(
    superset: list[Restaurant],
    spec: FilterSpec,
    now: datetime,
    settings: Settings,
) -> SearchResult:
    if len(superset) >= settings.open_now_fetch_cap:
        logger.warning(
            "Open-now superset hit the fetch cap of %d; total may be understated",
            settings.open_now_fetch_cap,
        )
    open_records = apply_open_now(superset, now)
    logger.debug("Open-now kept %d of %d candidates", len(open_records), len(superset))
    return SearchResult(
        records=open_records[spec.skip:spec.skip + spec.limit],
        total=len(open_records),
    )


def _attribute_search(
    spec: FilterSpec,
    store: RestaurantStore,
    now: datetime,
    settings: Settings,
) -> SearchResult:
    if spec.open_now:
        superset = store.find(
            spec.predicates,
            text=spec.text,
            sort=spec.sort,
            limit=settings.open_now_fetch_cap,
        )
        return _paginate_open_now(superset, spec, now, settings)

    records = store.find(
        spec.predicates,
        text=spec.text,
        sort=spec.sort,
        skip=spec.skip,
        limit=spec.limit,
    )
    total = store.count(spec.predicates, text=spec.text)
    return SearchResult(records=records, total=total)


def _proximity_search(
    spec: FilterSpec,
    store: RestaurantStore,
    now: datetime,
    settings: Settings,
) -> SearchResult:
    if spec.open_now:
        superset = store.near(
            spec.near,
            spec.max_distance_m,
            spec.predicates,
            limit=settings.open_now_fetch_cap,
        )
        return _paginate_open_now(superset, spec, now, settings)

    records = store.near(
        spec.near,
        spec.max_distance_m,
        spec.predicates,
        skip=spec.skip,
        limit=spec.limit,
    )
    total = store.count_near(spec.near, spec.max_distance_m, spec.predicates)
    return SearchResult(records=records, total=total)


def execute(
    spec: FilterSpec,
    store: RestaurantStore,
    now: datetime | None = None,
    settings: Settings = DEFAULT_SETTINGS,
) -> SearchResult:
    """Run ``spec`` against ``store`` on the path its coordinates select."""
    if now is None:
        now = current_time(settings)
    path = "proximity" if spec.is_proximity else "attribute"

    try:
        if spec.is_proximity:
            result = _proximity_search(spec, store, now, settings)
        else:
            result = _attribute_search(spec, store, now, settings)
    except Exception:
        logger.exception(
            "%s search failed, returning empty result for filter spec %s",
            path.capitalize(), spec.describe(),
        )
        return SearchResult()

    logger.info(
        "%s search returned %d restaurants, total %d",
        path.capitalize(), len(result.records), result.total,
    )
    return result
