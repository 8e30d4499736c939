from __future__ import annotations

from datetime import datetime
from unittest.mock import patch

from restaurant_finder.config import Settings
from restaurant_finder.restaurants.filters import compile_filters
from restaurant_finder.restaurants.models import Restaurant
from restaurant_finder.restaurants.open_now import apply_open_now
from restaurant_finder.restaurants.search import SearchResult, execute
from restaurant_finder.restaurants.store import RestaurantStore

WEDNESDAY_3PM = datetime(2023, 6, 14, 15, 0)
WEDNESDAY_8PM = datetime(2023, 6, 14, 20, 0)


def _ids(result):
    return [r.external_id for r in result.records]


def _run(store, now=WEDNESDAY_3PM, **params):
    spec = compile_filters(params)
    return spec, execute(spec, store, now)


def _lunch_and_dinner_store(make_restaurant):
    """Three lunch places and three dinner places, ratings descending in id order."""
    records = []
    for i, rating in enumerate([4.9, 4.7, 4.5]):
        records.append(make_restaurant(f"lunch{i}", rating=rating, openingHours={"wed": "11:00-16:00"}))
    for i, rating in enumerate([4.8, 4.6, 4.4]):
        records.append(make_restaurant(f"dinner{i}", rating=rating, openingHours={"wed": "18:00-23:00"}))
    return RestaurantStore(records)


# ── Attribute path ───────────────────────────────────────────────────────


def test_total_matches_predicate_cardinality(five_store):
    _, result = _run(five_store, deliveryUnder30="true", minRating="3.5")
    assert result.total == 2
    assert sorted(r.rating for r in result.records) == [3.5, 4.5]


def test_page_two_of_five(five_store):
    spec, result = _run(five_store, page="2", limit="2")
    assert _ids(result) == ["r5", "r2"]
    page = result.to_page(spec)
    assert page.count == 2
    assert page.pagination.model_dump() == {"total": 5, "page": 2, "pages": 3, "limit": 2}


def test_malformed_filter_behaves_like_omitted(five_store):
    _, with_bad = _run(five_store, minRating="invalid", deliveryUnder30="true")
    _, without = _run(five_store, deliveryUnder30="true")
    assert _ids(with_bad) == _ids(without)
    assert with_bad.total == without.total == 3


def test_open_now_paginates_after_filtering(make_restaurant):
    store = _lunch_and_dinner_store(make_restaurant)

    _, first = _run(store, now=WEDNESDAY_8PM, openNow="true", limit="2")
    assert first.total == 3
    assert _ids(first) == ["dinner0", "dinner1"]

    _, second = _run(store, now=WEDNESDAY_8PM, openNow="true", limit="2", page="2")
    assert second.total == 3
    assert _ids(second) == ["dinner2"]


def test_open_now_combines_with_predicates(make_restaurant):
    store = _lunch_and_dinner_store(make_restaurant)
    _, result = _run(store, now=WEDNESDAY_3PM, openNow="true", minRating="4.6")
    assert _ids(result) == ["lunch0", "lunch1"]
    assert result.total == 2


def test_open_now_superset_is_capped(make_restaurant):
    store = _lunch_and_dinner_store(make_restaurant)
    spec = compile_filters({"openNow": "true"})
    result = execute(spec, store, WEDNESDAY_8PM, settings=Settings(open_now_fetch_cap=4))
    # Only the four best-rated candidates are examined
    assert _ids(result) == ["dinner0", "dinner1"]


def test_open_now_excludes_unparseable_hours(make_restaurant):
    store = RestaurantStore([
        make_restaurant("ok", openingHours={"wed": "12:00-17:00"}),
        make_restaurant("garbled", openingHours={"wed": "lunch only"}),
    ])
    _, result = _run(store, openNow="true")
    assert _ids(result) == ["ok"]
    assert result.total == 1


def test_wednesday_afternoon_only_restaurant(make_restaurant):
    store = RestaurantStore([make_restaurant("cafe", openingHours={"wed": "12:00-17:00"})])
    assert _run(store, now=WEDNESDAY_8PM, openNow="true")[1].total == 0
    assert _ids(_run(store, now=WEDNESDAY_3PM, openNow="true")[1]) == ["cafe"]


def test_snapshot_flag_is_independent_of_open_now(make_restaurant):
    store = RestaurantStore([
        make_restaurant("flag-closed", isOpen=False, openingHours={"wed": "12:00-17:00"}),
        make_restaurant("flag-open", isOpen=True, openingHours={"wed": "Closed"}),
    ])
    assert _ids(_run(store, openNow="true")[1]) == ["flag-closed"]
    assert _ids(_run(store, isOpen="true")[1]) == ["flag-open"]


def test_text_relevance_leads_sort(make_restaurant):
    store = RestaurantStore([
        make_restaurant("cuisine-hit", name="Luigi", cuisines=["Pizza"], rating=5.0),
        make_restaurant("name-hit", name="Pizza Hut", cuisines=["Fast Food"], rating=3.0),
    ])
    _, result = _run(store, q="pizza", sort="-rating")
    assert _ids(result) == ["name-hit", "cuisine-hit"]
    assert result.total == 2


# ── Proximity path ───────────────────────────────────────────────────────


def _located(make_restaurant, external_id, lat, **overrides):
    return make_restaurant(
        external_id,
        location={"type": "Point", "coordinates": [103.85, lat]},
        **overrides,
    )


def test_proximity_results_ordered_and_bounded(make_restaurant):
    store = RestaurantStore([
        _located(make_restaurant, "b", 1.305),
        _located(make_restaurant, "a", 1.301),
        _located(make_restaurant, "c", 1.315),
        _located(make_restaurant, "d", 1.33),
    ])
    spec, result = _run(store, longitude="103.85", latitude="1.30", maxDistance="1000")
    assert spec.is_proximity
    assert _ids(result) == ["a", "b"]
    assert result.total == 2
    assert all(r.distance_in_km <= 1.0 for r in result.records)


def test_proximity_total_matches_pages(make_restaurant):
    store = RestaurantStore([
        _located(make_restaurant, f"p{i}", 1.30 + i * 0.001, rating=4.0 if i % 2 else 2.0)
        for i in range(1, 7)
    ])
    params = {"longitude": "103.85", "latitude": "1.30", "minRating": "3", "limit": "2"}
    seen = []
    for page in ("1", "2"):
        _, result = _run(store, page=page, **params)
        assert result.total == 3
        seen.extend(_ids(result))
    assert seen == ["p1", "p3", "p5"]


def test_proximity_applies_open_now(make_restaurant):
    store = RestaurantStore([
        _located(make_restaurant, "lunch", 1.301, openingHours={"wed": "11:00-16:00"}),
        _located(make_restaurant, "dinner", 1.302, openingHours={"wed": "18:00-23:00"}),
    ])
    _, result = _run(store, now=WEDNESDAY_8PM, longitude="103.85", latitude="1.30", openNow="true")
    assert _ids(result) == ["dinner"]
    assert result.total == 1
    assert result.records[0].distance_in_km is not None


# ── Failure handling ─────────────────────────────────────────────────────


def test_storage_failure_degrades_to_empty_result(five_store):
    with patch.object(RestaurantStore, "find", side_effect=RuntimeError("index corrupted")):
        _, result = _run(five_store, minRating="4")
    assert result == SearchResult(records=[], total=0)


def test_proximity_failure_degrades_to_empty_result(five_store):
    with patch.object(RestaurantStore, "count_near", side_effect=RuntimeError("boom")):
        _, result = _run(five_store, longitude="103.85", latitude="1.30")
    assert result.records == []
    assert result.total == 0


def test_apply_open_now_keeps_order():
    records = [
        Restaurant(external_id=str(i), name=str(i), opening_hours={"wed": "12:00-17:00"})
        for i in range(3)
    ]
    assert [r.external_id for r in apply_open_now(records, WEDNESDAY_3PM)] == ["0", "1", "2"]
    assert apply_open_now(records, WEDNESDAY_8PM) == []
