from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from ..restaurants.hours import DAYS
from ..restaurants.store import RestaurantStore
from .config import DEFAULT_INGESTION_CONFIG, IngestionConfig

logger = logging.getLogger(__name__)


def _normalize_rating(rating: float | int | str | None) -> float | None:
    if rating is None:
        return None
    raw = str(rating).strip()
    # Handle "X/5" format (e.g. "4.1/5")
    if "/" in raw:
        raw = raw.split("/")[0].strip()
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None

    # Clamp to [0, 5]
    return max(0.0, min(5.0, value))


def _to_int(value: Any) -> int | None:
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return None
    return number if number >= 0 else None


def _to_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _coordinates(latlng: Mapping[str, Any]) -> list[float] | None:
    """Return ``[lon, lat]`` or ``None`` when the point is missing or out of range."""
    lat = _to_float(latlng.get("latitude"))
    lon = _to_float(latlng.get("longitude"))
    if lat is None or lon is None:
        return None
    if not (-180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0):
        return None
    return [lon, lat]


def normalize_merchant(raw: Mapping[str, Any], area: str) -> dict[str, Any] | None:
    """
    Map one delivery-platform merchant onto the canonical restaurant record.

    Returns ``None`` for merchants without an id or a usable location.
    """
    merchant_id = raw.get("id")
    coordinates = _coordinates(raw.get("latlng") or {})
    if not merchant_id or coordinates is None:
        return None

    brief = raw.get("merchantBrief") or {}
    open_hours = brief.get("openHours") or {}
    opening_hours = {"displayedHours": open_hours.get("displayedHours")}
    for day in DAYS:
        opening_hours[day] = open_hours.get(day)

    price_level = _to_int(brief.get("priceTag"))

    return {
        "externalId": str(merchant_id),
        "name": (brief.get("displayInfo") or {}).get("primaryText") or raw.get("chainName") or "",
        "address": (raw.get("address") or {}).get("name") or "",
        "area": area,
        "location": {"type": "Point", "coordinates": coordinates},
        "cuisines": [c for c in brief.get("cuisine") or [] if c],
        "priceLevel": price_level if price_level else None,
        "rating": _normalize_rating(brief.get("rating")),
        "reviewCount": _to_int(brief.get("vote_count")),
        "photoUrl": brief.get("photoHref") or None,
        "isOpen": open_hours.get("open"),
        "openingHours": opening_hours,
        "estimatedDeliveryTime": _to_int(raw.get("estimatedDeliveryTime")),
        "distanceInKm": _to_float(brief.get("distanceInKm")),
    }


def _batch_merchants(batch: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    if "merchants" in batch:
        return batch.get("merchants") or []
    return (batch.get("searchResult") or {}).get("searchMerchants") or []


def normalize_batches(batches: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Normalize every merchant of every ``{area, merchants}`` batch."""
    records: list[dict[str, Any]] = []
    skipped = 0
    for batch in batches:
        area = str(batch.get("area") or "")
        for merchant in _batch_merchants(batch):
            record = normalize_merchant(merchant, area)
            if record is None:
                skipped += 1
                continue
            records.append(record)
    if skipped:
        logger.warning("Skipped %d merchants without id or location", skipped)
    return records


def run_ingestion(config: IngestionConfig = DEFAULT_INGESTION_CONFIG) -> Path:
    """
    Execute the ingestion pipeline.

    Steps:
    - Read the raw merchant dump.
    - Normalize merchants into the canonical Restaurant schema.
    - Upsert them by external id into the processed snapshot.
    """
    config.processed_data_dir.mkdir(parents=True, exist_ok=True)

    batches = json.loads(config.raw_path.read_text(encoding="utf-8"))
    records = normalize_batches(batches)

    store = RestaurantStore.from_json(config.processed_path)
    written = store.upsert(records)
    logger.info("Upserted %d restaurants, snapshot now holds %d", written, len(store))

    return store.save(config.processed_path)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    path = run_ingestion()
    print(f"Ingestion complete. Processed data saved to: {path}")
