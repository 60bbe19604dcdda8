"""Build bounded, typed filter specs from untyped client query parameters.

Each catalog is a fixed registry of the parameters a resource accepts. A
parameter maps to exactly one typed predicate; anything not in the registry
is ignored, and a value that fails coercion drops only its own predicate.
Predicates name logical fields, never SQL; the store owns the mapping from
field to column expression.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from .models import PaginationSettings
from .normalize import parse_bool

if TYPE_CHECKING:
    from .storage import Storage

logger = logging.getLogger(__name__)

CONTROL_PARAMS = frozenset({"sortBy", "sortOrder", "limit", "offset"})


class Kind(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOL = "bool"


class Op(str, Enum):
    EQ = "eq"
    CONTAINS = "contains"
    GTE = "gte"
    LTE = "lte"
    # Field is a boolean expression; applied only when the param is true
    HOLDS = "holds"


@dataclass(frozen=True)
class FilterField:
    param: str
    field: str
    kind: Kind
    op: Op
    aliases: tuple[str, ...] = ()
    # Values that mean "no filter" (e.g. propertyType=all)
    ignore_values: tuple[str, ...] = ()
    # Client-facing values translated back to stored ones (e.g. for_sale -> active)
    value_map: Mapping[str, str] = field(default_factory=dict)

    @property
    def names(self) -> tuple[str, ...]:
        return (self.param, *self.aliases)


@dataclass(frozen=True)
class SortOption:
    field: str
    # None: direction comes from sortOrder
    fixed_descending: bool | None = None


@dataclass(frozen=True)
class Ordering:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class Predicate:
    field: str
    op: Op
    value: Any
    param: str


@dataclass(frozen=True)
class Catalog:
    """Registry of filters, sorts and default ordering for one resource."""

    resource: str
    fields: tuple[FilterField, ...]
    sorts: Mapping[str, SortOption]
    default_ordering: tuple[Ordering, ...]
    defaults: Mapping[str, str] = field(default_factory=dict)
    # Direction for sorts that take sortOrder when none is given
    default_descending: bool = False
    tiebreak: str = "id"

    def lookup(self, name: str) -> FilterField | None:
        for f in self.fields:
            if name in f.names:
                return f
        return None

    @property
    def known_params(self) -> frozenset[str]:
        names = {n for f in self.fields for n in f.names}
        return frozenset(names | CONTROL_PARAMS)


@dataclass(frozen=True)
class FilterSpec:
    resource: str
    predicates: tuple[Predicate, ...]
    orderings: tuple[Ordering, ...]
    limit: int
    offset: int
    sort_key: str | None = None

    def describe(self) -> dict[str, Any]:
        return {
            "resource": self.resource,
            "predicates": [
                {"field": p.field, "op": p.op.value, "value": p.value} for p in self.predicates
            ],
            "orderings": [
                {"field": o.field, "direction": "desc" if o.descending else "asc"}
                for o in self.orderings
            ],
            "sort_key": self.sort_key,
            "limit": self.limit,
            "offset": self.offset,
        }


PROVIDERS = Catalog(
    resource="service_providers",
    fields=(
        FilterField("category", "service_category", Kind.TEXT, Op.EQ),
        FilterField("city", "city", Kind.TEXT, Op.CONTAINS),
        FilterField("verified", "verified", Kind.BOOL, Op.EQ),
        FilterField("featured", "featured", Kind.BOOL, Op.EQ),
        FilterField("certified", "reac_certified", Kind.BOOL, Op.EQ, aliases=("reacCertified",)),
        FilterField("minRating", "rating", Kind.NUMBER, Op.GTE),
    ),
    sorts={
        "rating": SortOption("rating"),
        "reviewCount": SortOption("review_count"),
        "name": SortOption("company_name"),
        "newest": SortOption("date_joined"),
    },
    default_ordering=(
        Ordering("featured", descending=True),
        Ordering("rating", descending=True),
    ),
)

PROPERTIES = Catalog(
    resource="properties",
    fields=(
        FilterField("minPrice", "price", Kind.NUMBER, Op.GTE),
        FilterField("maxPrice", "price", Kind.NUMBER, Op.LTE),
        FilterField("type", "property_type", Kind.TEXT, Op.EQ, aliases=("propertyType",), ignore_values=("all",)),
        FilterField("minBedrooms", "bedrooms", Kind.NUMBER, Op.GTE, aliases=("bedrooms",)),
        FilterField("minBathrooms", "bathrooms", Kind.NUMBER, Op.GTE),
        FilterField("minSquareFeet", "square_feet", Kind.NUMBER, Op.GTE),
        FilterField("maxSquareFeet", "square_feet", Kind.NUMBER, Op.LTE),
        FilterField("city", "city", Kind.TEXT, Op.CONTAINS),
        FilterField("state", "state", Kind.TEXT, Op.EQ),
        FilterField("zipCode", "zip_code", Kind.TEXT, Op.EQ),
        FilterField("listingType", "listing_type", Kind.TEXT, Op.EQ),
        FilterField("status", "status", Kind.TEXT, Op.EQ, value_map={"for_sale": "active"}),
        FilterField("searchTerm", "keyword", Kind.TEXT, Op.CONTAINS, aliases=("location",)),
        FilterField("requireValidCoordinates", "has_coordinates", Kind.BOOL, Op.HOLDS),
    ),
    sorts={
        "price": SortOption("price"),
        "date": SortOption("created_at"),
        "size": SortOption("square_feet"),
        "bedrooms": SortOption("bedrooms"),
        "newest": SortOption("created_at", fixed_descending=True),
        "price_low": SortOption("price", fixed_descending=False),
        "price_high": SortOption("price", fixed_descending=True),
    },
    default_ordering=(Ordering("created_at", descending=True),),
    defaults={"status": "active"},
    default_descending=True,
)

CATALOGS: dict[str, Catalog] = {
    "providers": PROVIDERS,
    "properties": PROPERTIES,
}


def _first(value: Any) -> Any:
    """Multi-valued query params use their first value."""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _to_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        num = float(value)
    elif isinstance(value, str):
        try:
            num = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return num if math.isfinite(num) else None


def _to_text(value: Any) -> str | None:
    if value is None or isinstance(value, (list, tuple, dict)):
        return None
    s = str(value).strip()
    return s or None


def clamp_int(value: Any, default: int, lower: int, upper: int | None = None) -> int:
    """Truncate toward zero and clamp; unparsable values use ``default``."""
    num = _to_number(_first(value))
    result = default if num is None else int(num)
    result = max(lower, result)
    if upper is not None:
        result = min(upper, result)
    return result


class FilterQueryBuilder:
    """Turns raw query parameters into a ``FilterSpec`` and runs it."""

    def __init__(
        self,
        catalog: Catalog = PROVIDERS,
        pagination: PaginationSettings | None = None,
        store: Storage | None = None,
    ) -> None:
        self.catalog = catalog
        self.pagination = pagination or PaginationSettings()
        self.store = store

    def _predicate(self, spec_field: FilterField, name: str, raw: Any) -> Predicate | None:
        value = _first(raw)
        if spec_field.kind is Kind.NUMBER:
            coerced: Any = _to_number(value)
        elif spec_field.kind is Kind.BOOL:
            coerced = parse_bool(value)
        else:
            coerced = _to_text(value)
            if coerced is not None and coerced.lower() in spec_field.ignore_values:
                coerced = None
            elif coerced is not None:
                coerced = spec_field.value_map.get(coerced.lower(), coerced)
        if coerced is None:
            if value not in (None, ""):
                logger.debug("Dropping filter %s=%r: not a valid %s", name, value, spec_field.kind.value)
            return None
        if spec_field.op is Op.HOLDS and coerced is not True:
            return None
        return Predicate(field=spec_field.field, op=spec_field.op, value=coerced, param=spec_field.param)

    def _orderings(self, params: Mapping[str, Any]) -> tuple[tuple[Ordering, ...], str | None]:
        sort_by = _to_text(_first(params.get("sortBy")))
        option = self.catalog.sorts.get(sort_by) if sort_by else None
        if option is None:
            if sort_by:
                logger.debug("Unknown sort %r; using default ordering", sort_by)
            orderings = list(self.catalog.default_ordering)
            sort_by = None
        else:
            if option.fixed_descending is not None:
                descending = option.fixed_descending
            else:
                order = (_to_text(_first(params.get("sortOrder"))) or "").lower()
                if order in ("asc", "desc"):
                    descending = order == "desc"
                else:
                    descending = self.catalog.default_descending
            orderings = [Ordering(option.field, descending)]
        if all(o.field != self.catalog.tiebreak for o in orderings):
            orderings.append(Ordering(self.catalog.tiebreak))
        return tuple(orderings), sort_by

    def build(self, params: Mapping[str, Any] | None) -> FilterSpec:
        """Build a ``FilterSpec``; never raises on bad client input."""
        params = dict(params or {})
        for name, value in self.catalog.defaults.items():
            f = self.catalog.lookup(name)
            if f is not None and not any(n in params for n in f.names):
                params[name] = value

        unknown = sorted(k for k in params if k not in self.catalog.known_params)
        if unknown:
            logger.debug("Ignoring unrecognized filter parameters: %s", unknown)

        predicates: list[Predicate] = []
        seen: set[str] = set()
        for f in self.catalog.fields:
            for name in f.names:
                if name in params and f.param not in seen:
                    pred = self._predicate(f, name, params[name])
                    if pred is not None:
                        predicates.append(pred)
                        seen.add(f.param)

        orderings, sort_key = self._orderings(params)
        pg = self.pagination
        spec = FilterSpec(
            resource=self.catalog.resource,
            predicates=tuple(predicates),
            orderings=orderings,
            limit=clamp_int(params.get("limit"), pg.default_page_size, 0, pg.max_page_size),
            offset=clamp_int(params.get("offset"), 0, 0, pg.max_offset),
            sort_key=sort_key,
        )
        logger.debug("Built filter spec: %s", spec.describe())
        return spec

    def execute(self, spec: FilterSpec) -> list[dict[str, Any]]:
        """Run a spec against the configured store; store errors propagate."""
        if self.store is None:
            raise RuntimeError("FilterQueryBuilder has no store to execute against")
        return self.store.execute(spec)

    def search(self, params: Mapping[str, Any] | None) -> list[dict[str, Any]]:
        return self.execute(self.build(params))


def build_filter_spec(
    params: Mapping[str, Any] | None,
    catalog: Catalog = PROVIDERS,
    pagination: PaginationSettings | None = None,
) -> FilterSpec:
    return FilterQueryBuilder(catalog, pagination).build(params)
