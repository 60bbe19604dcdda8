"""Data models for canonical listings, providers, reviews and aggregates."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class ValidCoordinate:
    """A latitude/longitude pair that passed geo validation."""

    latitude: float
    longitude: float


@dataclass(frozen=True)
class Viewport:
    """Map center and zoom level covering a set of listings."""

    latitude: float
    longitude: float
    zoom: float
    point_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "zoom": self.zoom,
            "point_count": self.point_count,
        }


@dataclass
class Media:
    """Cover image plus full gallery; both always defined."""

    cover: str | None = None
    gallery: list[str] = field(default_factory=list)


@dataclass
class Agency:
    """Agency/contact block attached to a listing."""

    name: str | None = None
    agent_name: str | None = None
    phone: str | None = None
    email: str | None = None


@dataclass
class Listing:
    """Canonical listing schema (read model, never persisted)."""

    reference: str | None
    title: str | None
    address: str | None
    city: str | None
    state: str | None
    postal_code: str | None
    latitude: float | None
    longitude: float | None
    price: float | None
    beds: int | float | None
    baths: float | None
    area: float | None
    property_type: str | None
    listing_type: str | None
    status: str | None
    subtitle: str | None = None
    neighborhood: str | None = None
    country: str | None = None
    currency: str | None = None
    price_period: str | None = None
    half_baths: int | None = None
    area_unit: str | None = None
    lot_size: float | None = None
    lot_unit: str | None = None
    tenure: str | None = None
    year_built: int | None = None
    hoa_fees: float | None = None
    cap_rate: float | None = None
    days_on_market: int | None = None
    url: str | None = None
    media: Media = field(default_factory=Media)
    agency: Agency = field(default_factory=Agency)
    highlights: list[str] = field(default_factory=list)
    score: float | None = None
    source: str = "local"

    @property
    def coordinate(self) -> ValidCoordinate | None:
        if self.latitude is None or self.longitude is None:
            return None
        return ValidCoordinate(self.latitude, self.longitude)

    def to_dict(self) -> dict[str, Any]:
        return {
            "reference": self.reference,
            "title": self.title,
            "subtitle": self.subtitle,
            "address": self.address,
            "neighborhood": self.neighborhood,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "price": self.price,
            "currency": self.currency,
            "price_period": self.price_period,
            "beds": self.beds,
            "baths": self.baths,
            "half_baths": self.half_baths,
            "area": self.area,
            "area_unit": self.area_unit,
            "lot_size": self.lot_size,
            "lot_unit": self.lot_unit,
            "property_type": self.property_type,
            "listing_type": self.listing_type,
            "tenure": self.tenure,
            "year_built": self.year_built,
            "hoa_fees": self.hoa_fees,
            "cap_rate": self.cap_rate,
            "days_on_market": self.days_on_market,
            "status": self.status,
            "url": self.url,
            "media": {
                "cover": self.media.cover,
                "gallery": list(self.media.gallery),
            },
            "agency": {
                "name": self.agency.name,
                "agent_name": self.agency.agent_name,
                "phone": self.agency.phone,
                "email": self.agency.email,
            },
            "highlights": list(self.highlights),
            "score": self.score,
            "source": self.source,
        }


@dataclass
class Provider:
    """Canonical service-provider directory entry."""

    reference: str | None
    company_name: str | None
    category: str | None
    city: str | None
    address: str | None
    contact_person: str | None
    phone: str | None
    email: str | None
    website_url: str | None
    logo_url: str | None
    description: str | None
    rating: float
    review_count: int
    verified: bool
    featured: bool
    certified: bool
    specialties: list[str] = field(default_factory=list)
    date_joined: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "reference": self.reference,
            "company_name": self.company_name,
            "category": self.category,
            "city": self.city,
            "address": self.address,
            "contact_person": self.contact_person,
            "phone": self.phone,
            "email": self.email,
            "website_url": self.website_url,
            "logo_url": self.logo_url,
            "description": self.description,
            "rating": self.rating,
            "review_count": self.review_count,
            "verified": self.verified,
            "featured": self.featured,
            "certified": self.certified,
            "specialties": list(self.specialties),
            "date_joined": self.date_joined.isoformat() if self.date_joined else None,
        }


@dataclass
class Review:
    """A persisted provider review."""

    id: int
    provider_id: int
    rating: int
    review: str | None = None
    reviewer_name: str | None = None
    user_id: int | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class AggregateStats:
    """Provider-level review count and mean rating."""

    review_count: int
    rating: float

    def to_dict(self) -> dict[str, Any]:
        return {"reviewCount": self.review_count, "rating": self.rating}


@dataclass
class PaginationSettings:
    """Page size bounds for filtered queries."""

    default_page_size: int = 20
    max_page_size: int = 100
    # Larger offsets cannot match anything; keeps the SQL literal in range
    max_offset: int = 2**31 - 1


@dataclass
class MapSettings:
    """Fallback viewport and zoom bounds for map consumers."""

    default_latitude: float = -24.6282
    default_longitude: float = 25.9231
    default_zoom: float = 11
    min_zoom: float = 8
    max_zoom: float = 12
    padding_degrees: float = 0.01


@dataclass
class MarketSettings:
    """Regional defaults stamped onto canonical listings."""

    property_prefix: str = "BD"
    provider_prefix: str = "SP"
    country: str = "Botswana"
    currency: str = "BWP"
    agency_name: str = "BeeDab Real Estate"
    area_unit: str = "sqft"
    lot_unit: str = "sqft"
    highlight_count: int = 4


@dataclass
class GeocodingSettings:
    """Geocoder region bias and the market bounding box."""

    region: str = "bw"
    address_suffix: str = "Gaborone, Botswana"
    min_latitude: float = -27.0
    max_latitude: float = -17.0
    min_longitude: float = 20.0
    max_longitude: float = 29.0
    timeout_seconds: float = 10.0
