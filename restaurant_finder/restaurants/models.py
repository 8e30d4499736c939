from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GeoPoint(_CamelModel):
    type: str = "Point"
    coordinates: list[float] = Field(default_factory=list, description="[longitude, latitude]")

    @property
    def is_valid(self) -> bool:
        """True when the point can take part in geospatial queries."""
        if len(self.coordinates) != 2:
            return False
        lon, lat = self.coordinates
        return -180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0


class OpeningHours(_CamelModel):
    displayed_hours: str | None = None
    sun: str | None = None
    mon: str | None = None
    tue: str | None = None
    wed: str | None = None
    thu: str | None = None
    fri: str | None = None
    sat: str | None = None


class Restaurant(_CamelModel):
    external_id: str = Field(..., min_length=1)
    name: str
    address: str = ""
    area: str = ""
    location: GeoPoint | None = None
    cuisines: list[str] = Field(default_factory=list)
    price_level: int | None = Field(default=None, ge=0)
    rating: float | None = Field(default=None, ge=0.0, le=5.0)
    review_count: int | None = Field(default=None, ge=0)
    photo_url: str | None = None
    is_open: bool | None = Field(
        default=None, description="Open flag captured at scrape time, not the live open-now state"
    )
    opening_hours: OpeningHours = Field(default_factory=OpeningHours)
    estimated_delivery_time: int | None = Field(default=None, ge=0)
    distance_in_km: float | None = None
    last_updated: datetime | None = None


class Pagination(BaseModel):
    total: int
    page: int
    pages: int
    limit: int


class RestaurantPage(BaseModel):
    success: bool = True
    count: int
    pagination: Pagination
    data: list[Restaurant]


class RestaurantList(BaseModel):
    success: bool = True
    count: int
    data: list[Restaurant]


class RestaurantDetail(BaseModel):
    success: bool = True
    data: Restaurant


class NamedItem(BaseModel):
    name: str


class CuisineList(BaseModel):
    success: bool = True
    count: int
    data: list[NamedItem]


class AreaList(BaseModel):
    success: bool = True
    count: int
    data: list[str]


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
