"""Core data models for the listing search engine."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Bedroom counts at or above this value form one open-ended bucket.
OR_MORE_BEDROOMS = 6


class ListingRecord(BaseModel):
    """A listing row as stored.

    ``amenities`` and ``images`` hold the serialized collection text exactly as
    persisted; see :mod:`listings_search.core.codec`.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    description: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    price: int = Field(ge=0)
    property_type: str = ""
    bedrooms: int = Field(default=0, ge=0)
    available_from: date
    available_to: date
    amenities: str | None = None
    images: str | None = None
    contact_name: str = ""
    contact_email: str = ""
    contact_phone: str = ""
    owner_id: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class ListingView(BaseModel):
    """A ListingRecord with its serialized collections decoded.

    Serialized with camelCase keys (``propertyType``, ``availableFrom``, ...)
    when dumped ``by_alias``, matching ``totalCount`` on the response.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str
    description: str
    address: str
    city: str
    state: str
    price: int
    property_type: str
    bedrooms: int
    available_from: date
    available_to: date
    amenities: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
    contact_name: str
    contact_email: str
    contact_phone: str
    owner_id: str | None
    created_at: datetime
    updated_at: datetime


class PriceRange(BaseModel):
    """Monthly price bounds. ``max_price`` of None is an open upper bound."""

    model_config = ConfigDict(frozen=True)

    min_price: int = 0
    max_price: int | None = None


class BedroomsFilter(BaseModel):
    """Exact bedroom count, or ``value`` and above when ``or_more`` is set."""

    model_config = ConfigDict(frozen=True)

    value: int = Field(ge=0)
    or_more: bool = False


class DateRange(BaseModel):
    """Coverage window: a listing must be available for the whole range."""

    model_config = ConfigDict(frozen=True)

    start: date
    end: date


class SearchCriteria(BaseModel):
    """Typed filters for one search request. Absent fields mean no filter."""

    model_config = ConfigDict(frozen=True)

    city: str | None = None
    state: str | None = None
    price: PriceRange | None = None
    property_type: str | None = None
    bedrooms: BedroomsFilter | None = None
    amenities: tuple[str, ...] | None = None
    date_range: DateRange | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class SearchResponse(BaseModel):
    """Response body of a listing search."""

    model_config = ConfigDict(populate_by_name=True)

    listings: list[ListingView] = Field(default_factory=list)
    total_count: int = Field(default=0, ge=0, alias="totalCount")
