"""Normalize loosely-typed stored records into canonical listings.

Every field parser here is total: malformed input degrades to a documented
default (``None`` or an empty list) and is never raised to the caller.
Stored records may use the camelCase column names of the web backend or the
snake_case names of the local store; both are accepted.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any

from . import geo
from .models import Agency, Listing, MarketSettings, Media, Provider

logger = logging.getLogger(__name__)

_NON_NUMERIC = re.compile(r"[^\d.\-]")
_TRUE_STRINGS = {"true", "1", "yes", "y", "t"}
_FALSE_STRINGS = {"false", "0", "no", "n", "f"}


def _get(raw: Mapping[str, Any], *keys: str) -> Any:
    """First non-None value among ``keys``."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def parse_string_list(value: Any) -> list[str]:
    """Parse a serialized collection field into a list of strings.

    Accepts an already-deserialized list/tuple or a JSON array string.
    Anything else (absent, empty, unparsable, non-array JSON) becomes ``[]``.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        try:
            parsed = json.loads(text)
        except ValueError:
            logger.debug("Unparsable collection value: %.60r", text)
            return []
        if isinstance(parsed, list):
            return [str(item) for item in parsed if item is not None]
        return []
    return []


def parse_number(value: Any) -> float | None:
    """Parse a number that may be stored as a formatted string ('P 1,250,000').

    Returns ``None`` (never 0) when the value is absent or not finite.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        num = float(value)
        return num if math.isfinite(num) else None
    if not isinstance(value, str):
        return None
    s = value.strip()
    if not s:
        return None
    try:
        num = float(s)
    except ValueError:
        cleaned = _NON_NUMERIC.sub("", s)
        if not cleaned:
            return None
        try:
            num = float(cleaned)
        except ValueError:
            return None
    return num if math.isfinite(num) else None


def parse_count(value: Any) -> int | float | None:
    """Parse a count; integral values come back as ``int``."""
    num = parse_number(value)
    if num is None:
        return None
    return int(num) if num.is_integer() else num


def parse_int(value: Any) -> int | None:
    num = parse_number(value)
    return int(num) if num is not None else None


def parse_bool(value: Any) -> bool | None:
    """Parse booleans stored as bool, 0/1 or text; ``None`` if unrecognized."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        s = value.strip().lower()
        if s in _TRUE_STRINGS:
            return True
        if s in _FALSE_STRINGS:
            return False
    return None


def parse_text(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if not isinstance(value, str):
        return None
    s = value.strip()
    return s or None


def parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def _first_positive(*values: Any) -> float | None:
    for value in values:
        num = parse_number(value)
        if num is not None and num > 0:
            return num
    return None


class RecordNormalizer:
    """Converts stored property/provider rows into canonical read models."""

    def __init__(self, settings: MarketSettings | None = None) -> None:
        self.settings = settings or MarketSettings()

    def _reference(self, prefix: str, record_id: Any) -> str | None:
        rid = parse_text(record_id)
        return f"{prefix}-{rid}" if rid is not None else None

    def normalize(self, raw: Any) -> Listing:
        """Convert one stored property record into a ``Listing``."""
        if not isinstance(raw, Mapping):
            raw = {}
        s = self.settings

        record_id = parse_text(raw.get("id"))
        images = parse_string_list(raw.get("images"))
        features = parse_string_list(raw.get("features"))

        coord = geo.validate(raw.get("latitude"), raw.get("longitude"))

        listing_type = parse_text(_get(raw, "listingType", "listing_type"))
        kind = (listing_type or "").lower()
        status = parse_text(raw.get("status"))
        if status == "active":
            status = "for_sale"

        agency = Agency(
            name=parse_text(_get(raw, "agencyName", "agency_name")) or s.agency_name,
            agent_name=parse_text(_get(raw, "agentName", "agent_name")),
            phone=parse_text(_get(raw, "agentPhone", "agent_phone")),
            email=parse_text(_get(raw, "agentEmail", "agent_email")),
        )

        return Listing(
            reference=self._reference(s.property_prefix, record_id),
            title=parse_text(raw.get("title")),
            address=parse_text(raw.get("address")),
            city=parse_text(raw.get("city")),
            state=parse_text(raw.get("state")),
            postal_code=parse_text(_get(raw, "zipCode", "zip_code", "postal_code")),
            latitude=coord.latitude if coord else None,
            longitude=coord.longitude if coord else None,
            price=parse_number(raw.get("price")),
            beds=parse_count(raw.get("bedrooms")),
            baths=parse_number(raw.get("bathrooms")),
            area=_first_positive(
                _get(raw, "squareFeet", "square_feet"),
                _get(raw, "areaBuild", "area_build"),
            ),
            property_type=parse_text(_get(raw, "propertyType", "property_type")),
            listing_type=listing_type,
            status=status,
            country=s.country,
            currency=s.currency,
            price_period="per_month" if kind == "rental" else "total",
            half_baths=0,
            area_unit=s.area_unit,
            lot_size=parse_number(_get(raw, "lotSize", "lot_size")),
            lot_unit=s.lot_unit,
            tenure="freehold" if kind == "owner" else None,
            year_built=parse_int(_get(raw, "yearBuilt", "year_built")),
            hoa_fees=parse_number(_get(raw, "hoaFees", "hoa_fees")),
            days_on_market=parse_int(_get(raw, "daysOnMarket", "days_on_market")),
            url=f"/properties/{record_id}" if record_id is not None else None,
            media=Media(cover=images[0] if images else None, gallery=images),
            agency=agency,
            highlights=features[: s.highlight_count],
        )

    def to_record(self, listing: Listing) -> dict[str, Any]:
        """Project a ``Listing`` back onto the stored record shape."""
        prefix = f"{self.settings.property_prefix}-"
        record_id = None
        if listing.reference and listing.reference.startswith(prefix):
            record_id = listing.reference[len(prefix):]
        status = "active" if listing.status == "for_sale" else listing.status
        return {
            "id": record_id,
            "title": listing.title,
            "address": listing.address,
            "city": listing.city,
            "state": listing.state,
            "zip_code": listing.postal_code,
            "latitude": listing.latitude,
            "longitude": listing.longitude,
            "price": listing.price,
            "bedrooms": listing.beds,
            "bathrooms": listing.baths,
            "square_feet": listing.area,
            "property_type": listing.property_type,
            "listing_type": listing.listing_type,
            "status": status,
            "lot_size": listing.lot_size,
            "year_built": listing.year_built,
            "hoa_fees": listing.hoa_fees,
            "days_on_market": listing.days_on_market,
            "images": json.dumps(listing.media.gallery),
            "features": json.dumps(listing.highlights),
            "agency_name": listing.agency.name,
            "agent_name": listing.agency.agent_name,
            "agent_phone": listing.agency.phone,
            "agent_email": listing.agency.email,
        }

    def normalize_provider(self, raw: Any) -> Provider:
        """Convert one stored service-provider row into a ``Provider``."""
        if not isinstance(raw, Mapping):
            raw = {}
        rating = parse_number(raw.get("rating"))
        rating = min(5.0, max(0.0, rating)) if rating is not None else 0.0
        review_count = parse_int(_get(raw, "reviewCount", "review_count"))
        return Provider(
            reference=self._reference(self.settings.provider_prefix, raw.get("id")),
            company_name=parse_text(_get(raw, "companyName", "company_name")),
            category=parse_text(_get(raw, "serviceCategory", "service_category", "category")),
            city=parse_text(raw.get("city")),
            address=parse_text(raw.get("address")),
            contact_person=parse_text(_get(raw, "contactPerson", "contact_person")),
            phone=parse_text(_get(raw, "phoneNumber", "phone_number", "phone")),
            email=parse_text(raw.get("email")),
            website_url=parse_text(_get(raw, "websiteUrl", "website_url")),
            logo_url=parse_text(_get(raw, "logoUrl", "logo_url")),
            description=parse_text(raw.get("description")),
            rating=rating,
            review_count=max(0, review_count) if review_count is not None else 0,
            verified=bool(parse_bool(raw.get("verified"))),
            featured=bool(parse_bool(raw.get("featured"))),
            certified=bool(parse_bool(_get(raw, "reacCertified", "reac_certified", "certified"))),
            specialties=parse_string_list(raw.get("specialties")),
            date_joined=parse_datetime(_get(raw, "dateJoined", "date_joined")),
        )


_default = RecordNormalizer()


def normalize(raw: Any) -> Listing:
    """Normalize a stored property record with the default market settings."""
    return _default.normalize(raw)


def normalize_provider(raw: Any) -> Provider:
    return _default.normalize_provider(raw)


def listing_to_record(listing: Listing) -> dict[str, Any]:
    return _default.to_record(listing)
