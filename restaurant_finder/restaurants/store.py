"""
In-memory restaurant store.

The canonical dataset is held in a pandas DataFrame: one row per restaurant,
the validated ``Restaurant`` model in the ``_record`` column and flat columns
for every queryable field. Compiled predicates are translated into boolean
masks here, which gives both search paths the same filter semantics.

Writers build a new frame and swap it in, so a reader holding a frame keeps a
consistent snapshot for as long as it needs it.
"""
from __future__ import annotations

import json
import logging
import re
import threading
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from ..config import DEFAULT_SETTINGS
from .filters import AnyOf, Contains, Coordinate, Equals, Predicate, Range, SortKey, TextMatch
from .models import Restaurant

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371008.8  # Mean Earth radius in meters.

# Relevance weight of each text-indexed field
TEXT_WEIGHTS: dict[str, int] = {"name": 10, "cuisines": 5, "area": 3, "address": 1}

_NUMERIC_COLUMNS = [
    "price_level",
    "rating",
    "review_count",
    "estimated_delivery_time",
    "distance_in_km",
    "longitude",
    "latitude",
]
_COLUMNS = [
    "external_id",
    "name",
    "address",
    "area",
    "cuisines",
    "is_open",
    "last_updated",
    *_NUMERIC_COLUMNS,
    "_record",
]
_TOKEN_RE = re.compile(r"\w+")


# ---------------------------------------------------------------------------
# Frame construction
# ---------------------------------------------------------------------------


def _to_row(record: Restaurant) -> dict[str, Any]:
    lon = lat = np.nan
    if record.location is not None and record.location.is_valid:
        lon, lat = record.location.coordinates
    last_updated = record.last_updated
    if last_updated is not None and last_updated.tzinfo is None:
        last_updated = last_updated.replace(tzinfo=timezone.utc)
    return {
        "external_id": record.external_id,
        "name": record.name,
        "address": record.address,
        "area": record.area,
        "cuisines": list(record.cuisines),
        "is_open": record.is_open,
        "last_updated": last_updated,
        "price_level": record.price_level,
        "rating": record.rating,
        "review_count": record.review_count,
        "estimated_delivery_time": record.estimated_delivery_time,
        "distance_in_km": record.distance_in_km,
        "longitude": lon,
        "latitude": lat,
        "_record": record,
    }


def _build_frame(rows: list[dict[str, Any]]) -> pd.DataFrame:
    df = pd.DataFrame(rows, columns=_COLUMNS)
    for column in _NUMERIC_COLUMNS:
        df[column] = pd.to_numeric(df[column], errors="coerce").astype(float)
    df["last_updated"] = pd.to_datetime(df["last_updated"], utc=True)
    return df.reset_index(drop=True)


# ---------------------------------------------------------------------------
# Predicate translation
# ---------------------------------------------------------------------------


def _predicate_mask(df: pd.DataFrame, predicate: Predicate) -> pd.Series:
    column = df[predicate.field]

    if isinstance(predicate, Equals):
        return (column == predicate.value).fillna(False).astype(bool)

    if isinstance(predicate, Range):
        mask = column.notna()
        if predicate.gte is not None:
            mask &= column >= predicate.gte
        if predicate.lte is not None:
            mask &= column <= predicate.lte
        return mask

    if isinstance(predicate, AnyOf):
        wanted = {v.lower() for v in predicate.values}
        return column.apply(lambda values: any(str(v).lower() in wanted for v in values))

    if isinstance(predicate, Contains):
        return column.fillna("").astype(str).str.contains(predicate.text, case=False, regex=False)

    raise TypeError(f"Unsupported predicate {predicate!r}")


def build_mask(df: pd.DataFrame, predicates: Iterable[Predicate]) -> pd.Series:
    """AND together the masks of every predicate."""
    mask = pd.Series(True, index=df.index)
    for predicate in predicates:
        mask &= _predicate_mask(df, predicate)
    return mask


def _stem(token: str) -> str:
    if len(token) > 3 and token.endswith("s") and not token.endswith("ss"):
        return token[:-1]
    return token


def _tokens(text: str) -> list[str]:
    return [_stem(t) for t in _TOKEN_RE.findall(text.lower())]


def _text_score(row: pd.Series, terms: set[str]) -> float:
    """Weighted count of query-term occurrences across the text-indexed fields."""
    score = 0.0
    for field_name, weight in TEXT_WEIGHTS.items():
        value = row[field_name]
        if isinstance(value, list):
            value = " ".join(str(v) for v in value)
        if not isinstance(value, str) or not value:
            continue
        hits = sum(1 for token in _tokens(value) if token in terms)
        score += weight * hits
    return score


def haversine_m(df: pd.DataFrame, point: Coordinate) -> pd.Series:
    """Great-circle distance in meters from ``point`` to every row (NaN without location)."""
    lat_rad = np.radians(df["latitude"].to_numpy(dtype=float))
    lon_rad = np.radians(df["longitude"].to_numpy(dtype=float))
    center_lat = np.radians(point.latitude)
    center_lon = np.radians(point.longitude)
    sin_lat = np.sin((lat_rad - center_lat) / 2.0)
    sin_lon = np.sin((lon_rad - center_lon) / 2.0)
    a = sin_lat**2 + np.cos(center_lat) * np.cos(lat_rad) * sin_lon**2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
    return pd.Series(EARTH_RADIUS_M * c, index=df.index)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class RestaurantStore:
    def __init__(self, records: Iterable[Restaurant | Mapping[str, Any]] | None = None) -> None:
        self._df = _build_frame([])
        self._lock = threading.Lock()
        if records:
            self.upsert(records, touch=False)

    @classmethod
    def from_json(cls, path: Path) -> RestaurantStore:
        """Load a processed snapshot; a missing file yields an empty store."""
        store = cls()
        if not path.exists():
            logger.warning("Restaurant snapshot %s not found; starting with an empty store", path)
            return store
        raw = json.loads(path.read_text(encoding="utf-8"))
        store.upsert(raw, touch=False)
        logger.info("Loaded %d restaurants from %s", len(store), path)
        return store

    def __len__(self) -> int:
        return len(self._df)

    def frame(self) -> pd.DataFrame:
        """Return the current snapshot frame."""
        return self._df

    # -- writes -------------------------------------------------------------

    def upsert(
        self,
        records: Iterable[Restaurant | Mapping[str, Any]],
        touch: bool = True,
    ) -> int:
        """
        Insert or replace restaurants keyed by ``external_id``.

        With ``touch`` every written record gets a fresh ``last_updated``.
        Returns the number of records written.
        """
        now = datetime.now(timezone.utc)
        incoming: dict[str, Restaurant] = {}
        for raw in records:
            record = raw if isinstance(raw, Restaurant) else Restaurant.model_validate(raw)
            if touch or record.last_updated is None:
                record = record.model_copy(update={"last_updated": now})
            incoming[record.external_id] = record

        if not incoming:
            return 0

        with self._lock:
            current = self._df
            kept = current.loc[~current["external_id"].isin(list(incoming)), "_record"].tolist()
            rows = [_to_row(r) for r in kept] + [_to_row(r) for r in incoming.values()]
            self._df = _build_frame(rows)

        logger.debug("Upserted %d restaurants", len(incoming))
        return len(incoming)

    def save(self, path: Path) -> Path:
        """Write every record to ``path`` as a JSON array in wire format."""
        records = [r.model_dump(mode="json", by_alias=True) for r in self._df["_record"]]
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(records, indent=2, ensure_ascii=False), encoding="utf-8")
        return path

    # -- reads --------------------------------------------------------------

    def get(self, external_id: str) -> Restaurant | None:
        df = self._df
        match = df.loc[df["external_id"] == external_id, "_record"]
        return match.iloc[0] if not match.empty else None

    def _matching(
        self,
        predicates: Iterable[Predicate],
        text: TextMatch | None,
    ) -> pd.DataFrame:
        df = self._df
        candidates = df.loc[build_mask(df, predicates)]
        if text is None:
            return candidates
        terms = set(_tokens(text.query))
        if not terms or candidates.empty:
            return candidates.iloc[0:0].assign(_score=pd.Series(dtype=float))
        scored = candidates.assign(
            _score=candidates.apply(_text_score, axis=1, terms=terms)
        )
        return scored.loc[scored["_score"] > 0]

    def find(
        self,
        predicates: Iterable[Predicate] = (),
        text: TextMatch | None = None,
        sort: SortKey = SortKey(),
        skip: int = 0,
        limit: int | None = None,
    ) -> list[Restaurant]:
        """
        Return matching restaurants in sort order.

        With a text match the relevance score is the primary sort key and
        ``sort`` only breaks ties.
        """
        matching = self._matching(predicates, text)
        by = [sort.field, "external_id"]
        ascending = [not sort.descending, True]
        if text is not None:
            by.insert(0, "_score")
            ascending.insert(0, False)
        ordered = matching.sort_values(by=by, ascending=ascending, na_position="last", kind="mergesort")
        end = None if limit is None else skip + limit
        return ordered["_record"].iloc[skip:end].tolist()

    def count(self, predicates: Iterable[Predicate] = (), text: TextMatch | None = None) -> int:
        return int(len(self._matching(predicates, text)))

    def _within(
        self,
        point: Coordinate,
        max_distance_m: float,
        predicates: Iterable[Predicate],
    ) -> pd.DataFrame:
        df = self._df
        distances = haversine_m(df, point)
        mask = distances.notna() & (distances <= max_distance_m) & build_mask(df, predicates)
        within = df.loc[mask].assign(_distance_m=distances[mask])
        return within.sort_values(by=["_distance_m", "external_id"], kind="mergesort")

    def near(
        self,
        point: Coordinate,
        max_distance_m: float,
        predicates: Iterable[Predicate] = (),
        skip: int = 0,
        limit: int | None = None,
    ) -> list[Restaurant]:
        """
        Nearest-first scan within ``max_distance_m`` meters of ``point``.

        Predicates are applied inside the scan, before pagination. Each result
        carries the live distance in ``distance_in_km``.
        """
        end = None if limit is None else skip + limit
        page = self._within(point, max_distance_m, predicates).iloc[skip:end]
        return [
            record.model_copy(update={"distance_in_km": distance / 1000.0})
            for record, distance in zip(page["_record"], page["_distance_m"])
        ]

    def count_near(
        self,
        point: Coordinate,
        max_distance_m: float,
        predicates: Iterable[Predicate] = (),
    ) -> int:
        return int(len(self._within(point, max_distance_m, predicates)))

    def distinct_cuisines(self) -> list[str]:
        cuisines: set[str] = set()
        for values in self._df["cuisines"]:
            cuisines.update(c for c in values if c)
        return sorted(cuisines)

    def distinct_areas(self) -> list[str]:
        return sorted(a for a in self._df["area"].dropna().unique().tolist() if a)


_store: RestaurantStore | None = None
_store_lock = threading.Lock()


def get_store() -> RestaurantStore:
    """Return the process-wide store, loading the snapshot on first call."""
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                _store = RestaurantStore.from_json(DEFAULT_SETTINGS.data_path)
    return _store
