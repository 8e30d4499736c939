from __future__ import annotations

import logging
from datetime import datetime

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import DEFAULT_SETTINGS
from .restaurants.filters import Equals, FilterSpec, TextMatch, compile_filters
from .restaurants.models import (
    AreaList,
    CuisineList,
    ErrorResponse,
    NamedItem,
    RestaurantDetail,
    RestaurantList,
    RestaurantPage,
)
from .restaurants.search import current_time, execute
from .restaurants.store import RestaurantStore, get_store

logging.basicConfig(
    level=DEFAULT_SETTINGS.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Restaurant Finder API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[DEFAULT_SETTINGS.cors_origin],
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)


def get_now() -> datetime:
    """Evaluation instant for the open-now filter."""
    return current_time(DEFAULT_SETTINGS)


# ── Error handlers ───────────────────────────────────────────────────────


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning(
        "%s %s failed with %d: %s", request.method, request.url.path, exc.status_code, exc.detail,
    )
    body = ErrorResponse(message=str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    body = ErrorResponse(message="Internal Server Error")
    return JSONResponse(status_code=500, content=body.model_dump())


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# ── Restaurant endpoints ─────────────────────────────────────────────────


@app.get("/api/restaurants", response_model=RestaurantPage)
def list_restaurants(
    request: Request,
    store: RestaurantStore = Depends(get_store),
    now: datetime = Depends(get_now),
) -> RestaurantPage:
    # Coordinates in the query switch this endpoint to the proximity path
    spec = compile_filters(request.query_params)
    return execute(spec, store, now).to_page(spec)


@app.get("/api/restaurants/near", response_model=RestaurantPage)
def restaurants_near(
    request: Request,
    store: RestaurantStore = Depends(get_store),
    now: datetime = Depends(get_now),
) -> RestaurantPage:
    params = request.query_params
    if not params.get("longitude") or not params.get("latitude"):
        raise HTTPException(status_code=400, detail="Please provide longitude and latitude")

    spec = compile_filters(params)
    if spec.near is None:
        raise HTTPException(status_code=400, detail="Invalid longitude or latitude")

    return execute(spec, store, now).to_page(spec)


@app.get("/api/restaurants/search", response_model=RestaurantList)
def search_restaurants(
    request: Request,
    store: RestaurantStore = Depends(get_store),
    now: datetime = Depends(get_now),
) -> RestaurantList:
    query = request.query_params.get("q", "")
    if not query.strip():
        raise HTTPException(status_code=400, detail="Please provide a search query")

    spec = FilterSpec(text=TextMatch(query.strip()), limit=DEFAULT_SETTINGS.max_search_results)
    result = execute(spec, store, now)
    return RestaurantList(count=len(result.records), data=result.records)


@app.get("/api/restaurants/cuisines", response_model=CuisineList)
def available_cuisines(store: RestaurantStore = Depends(get_store)) -> CuisineList:
    names = store.distinct_cuisines()
    return CuisineList(count=len(names), data=[NamedItem(name=n) for n in names])


@app.get("/api/restaurants/areas", response_model=AreaList)
def available_areas(store: RestaurantStore = Depends(get_store)) -> AreaList:
    areas = store.distinct_areas()
    return AreaList(count=len(areas), data=areas)


@app.get("/api/restaurants/area/{area}", response_model=RestaurantList)
def restaurants_in_area(
    area: str,
    store: RestaurantStore = Depends(get_store),
    now: datetime = Depends(get_now),
) -> RestaurantList:
    spec = FilterSpec(
        predicates=(Equals("area", area),),
        limit=DEFAULT_SETTINGS.max_search_results,
    )
    result = execute(spec, store, now)
    return RestaurantList(count=len(result.records), data=result.records)


@app.get("/api/restaurants/{external_id}", response_model=RestaurantDetail)
def restaurant_detail(
    external_id: str,
    store: RestaurantStore = Depends(get_store),
) -> RestaurantDetail:
    restaurant = store.get(external_id)
    if restaurant is None:
        raise HTTPException(status_code=404, detail=f"Restaurant not found with id {external_id}")
    return RestaurantDetail(data=restaurant)
