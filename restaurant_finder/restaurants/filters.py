"""
Filter compilation.

Turns raw query-string parameters into a ``FilterSpec``: a list of tagged,
storage-independent predicates plus pagination, sort order and the optional
proximity anchor. Compilation never fails. A value that cannot be parsed
drops its own filter and leaves the others untouched.
"""
from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from typing import Any, Union

from ..config import DEFAULT_SETTINGS, Settings

logger = logging.getLogger(__name__)

DELIVERY_FAST_MINUTES = 30

# Wire name -> record field for sortable keys
SORTABLE_FIELDS: dict[str, str] = {
    "rating": "rating",
    "reviewCount": "review_count",
    "priceLevel": "price_level",
    "estimatedDeliveryTime": "estimated_delivery_time",
    "name": "name",
    "distanceInKm": "distance_in_km",
    "lastUpdated": "last_updated",
}

_FLOAT_PREFIX_RE = re.compile(r"\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_INT_PREFIX_RE = re.compile(r"\s*[+-]?\d+")


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any


@dataclass(frozen=True)
class Range:
    field: str
    gte: float | None = None
    lte: float | None = None


@dataclass(frozen=True)
class AnyOf:
    field: str
    values: tuple[str, ...]


@dataclass(frozen=True)
class Contains:
    """Case-insensitive substring match."""

    field: str
    text: str


@dataclass(frozen=True)
class TextMatch:
    """Relevance-ranked full-text match over name, cuisines, area and address."""

    query: str


Predicate = Union[Equals, Range, AnyOf, Contains]


@dataclass(frozen=True)
class SortKey:
    field: str = "rating"
    descending: bool = True

    @classmethod
    def parse(cls, raw: str | None) -> SortKey:
        """Parse ``[-]wireName``; unknown keys fall back to descending rating."""
        if not raw or not raw.strip():
            return cls()
        raw = raw.strip()
        descending = raw.startswith("-")
        name = raw.lstrip("-+")
        if name not in SORTABLE_FIELDS:
            logger.debug("Ignoring unknown sort key %r", raw)
            return cls()
        return cls(field=SORTABLE_FIELDS[name], descending=descending)


@dataclass(frozen=True)
class Coordinate:
    longitude: float
    latitude: float


@dataclass(frozen=True)
class FilterSpec:
    predicates: tuple[Predicate, ...] = ()
    text: TextMatch | None = None
    open_now: bool = False
    page: int = 1
    limit: int = 20
    sort: SortKey = field(default_factory=SortKey)
    near: Coordinate | None = None
    max_distance_m: float = 2000.0

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def is_proximity(self) -> bool:
        return self.near is not None

    def describe(self) -> dict[str, Any]:
        """Plain-dict view used in log lines."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Raw value parsing
# ---------------------------------------------------------------------------


def parse_float(raw: Any) -> float | None:
    """Read a leading decimal number, ignoring trailing garbage (``"4.5x"`` -> 4.5)."""
    if raw is None:
        return None
    match = _FLOAT_PREFIX_RE.match(str(raw))
    if match is None:
        return None
    value = float(match.group(0))
    return value if math.isfinite(value) else None


def parse_int(raw: Any) -> int | None:
    """Read a leading integer, ignoring trailing garbage (``"3.7"`` -> 3)."""
    if raw is None:
        return None
    match = _INT_PREFIX_RE.match(str(raw))
    if match is None:
        return None
    return int(match.group(0))


def _first(params: Mapping[str, Any], key: str) -> str | None:
    value = params.get(key)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    return str(value)


def _all(params: Mapping[str, Any], key: str) -> list[str]:
    if hasattr(params, "getlist"):
        return [str(v) for v in params.getlist(key)]
    value = params.get(key)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def _split_csv(values: list[str]) -> tuple[str, ...]:
    seen: list[str] = []
    for value in values:
        for part in value.split(","):
            part = part.strip()
            if part and part not in seen:
                seen.append(part)
    return tuple(seen)


def _flag(params: Mapping[str, Any], key: str) -> bool:
    return _first(params, key) == "true"


def parse_coordinate(longitude: Any, latitude: Any) -> Coordinate | None:
    """Return a coordinate when both parts are numeric and within range."""
    lng = parse_float(longitude)
    lat = parse_float(latitude)
    if lng is None or lat is None:
        return None
    if not (-180.0 <= lng <= 180.0 and -90.0 <= lat <= 90.0):
        return None
    return Coordinate(longitude=lng, latitude=lat)


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------


def _numeric_filter(
    field_name: str,
    exact: float | None,
    minimum: float | None,
    maximum: float | None,
) -> Predicate | None:
    # An exact value wins over any bounds given alongside it
    if exact is not None:
        return Equals(field_name, exact)
    if minimum is None and maximum is None:
        return None
    return Range(field_name, gte=minimum, lte=maximum)


def _pagination(params: Mapping[str, Any], settings: Settings) -> tuple[int, int]:
    page = parse_int(_first(params, "page"))
    if page is None or page < 1:
        page = 1
    limit = parse_int(_first(params, "limit"))
    if limit is None or limit < 1:
        limit = settings.default_page_size
    return page, min(limit, settings.max_page_size)


def compile_filters(params: Mapping[str, Any], settings: Settings = DEFAULT_SETTINGS) -> FilterSpec:
    """Compile raw request parameters into a ``FilterSpec``."""
    predicates: list[Predicate] = []

    def add(predicate: Predicate | None) -> None:
        if predicate is not None:
            predicates.append(predicate)
            logger.debug("Added filter: %s", predicate)

    near = parse_coordinate(_first(params, "longitude"), _first(params, "latitude"))

    text = None
    query = _first(params, "q")
    if query and query.strip():
        if near is None:
            text = TextMatch(query.strip())
        else:
            logger.debug("Ignoring text query %r on proximity search", query)

    for key in ("name", "address"):
        value = _first(params, key)
        if value and value.strip():
            add(Contains(key, value.strip()))

    area = _first(params, "area")
    if area and area.strip():
        add(Equals("area", area.strip()))

    cuisines = _split_csv(_all(params, "cuisine") + _all(params, "cuisines"))
    if cuisines:
        add(AnyOf("cuisines", cuisines))

    add(_numeric_filter(
        "rating",
        parse_float(_first(params, "rating")),
        parse_float(_first(params, "minRating")),
        parse_float(_first(params, "maxRating")),
    ))
    add(_numeric_filter(
        "price_level",
        parse_int(_first(params, "priceLevel")),
        parse_int(_first(params, "minPrice")),
        parse_int(_first(params, "maxPrice")),
    ))

    min_reviews = parse_int(_first(params, "minReviews"))
    if min_reviews is not None:
        add(Range("review_count", gte=min_reviews))

    delivery_bounds = [parse_int(_first(params, "maxDeliveryTime"))]
    if _flag(params, "deliveryUnder30"):
        delivery_bounds.append(DELIVERY_FAST_MINUTES)
    delivery_bounds = [b for b in delivery_bounds if b is not None]
    if delivery_bounds:
        add(Range("estimated_delivery_time", lte=min(delivery_bounds)))

    max_distance_m = settings.default_max_distance_m
    if near is None:
        add(_numeric_filter(
            "distance_in_km",
            None,
            parse_float(_first(params, "minDistance")),
            parse_float(_first(params, "maxDistance")),
        ))
    else:
        radius = parse_float(_first(params, "maxDistance"))
        if radius is not None and radius > 0:
            max_distance_m = radius

    is_open = _first(params, "isOpen")
    if is_open is not None:
        add(Equals("is_open", is_open == "true"))

    page, limit = _pagination(params, settings)

    return FilterSpec(
        predicates=tuple(predicates),
        text=text,
        open_now=_flag(params, "openNow"),
        page=page,
        limit=limit,
        sort=SortKey.parse(_first(params, "sort")),
        near=near,
        max_distance_m=max_distance_m,
    )
