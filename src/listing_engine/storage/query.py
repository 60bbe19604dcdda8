"""Compile a FilterSpec into a parameterized DuckDB query."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..filters import FilterSpec, Op, Ordering, Predicate

# Prices are stored as free text ("P 1,250,000"); compare on the digits.
PRICE_EXPR = "TRY_CAST(NULLIF(regexp_replace(price, '[^0-9.]', '', 'g'), '') AS DOUBLE)"

# Valid pair: both numeric, inside range, neither exactly 0 (the "unset" sentinel)
_LAT = "TRY_CAST(trim(latitude) AS DOUBLE)"
_LNG = "TRY_CAST(trim(longitude) AS DOUBLE)"
HAS_COORDINATES_EXPR = (
    f"({_LAT} BETWEEN -90 AND 90 AND {_LAT} <> 0 "
    f"AND {_LNG} BETWEEN -180 AND 180 AND {_LNG} <> 0)"
)

# Keyword fields match when any of their columns contains the term
KEYWORD_COLUMNS: dict[str, dict[str, tuple[str, ...]]] = {
    "properties": {"keyword": ("city", "address", "title", "description")},
}

# Logical field -> SQL expression, per table. Only these ever reach the SQL text.
COLUMN_EXPRESSIONS: dict[str, dict[str, str]] = {
    "properties": {
        "id": "id",
        "price": PRICE_EXPR,
        "property_type": "property_type",
        "bedrooms": "bedrooms",
        "bathrooms": "TRY_CAST(bathrooms AS DOUBLE)",
        "square_feet": "square_feet",
        "city": "city",
        "state": "state",
        "zip_code": "zip_code",
        "listing_type": "listing_type",
        "status": "status",
        "created_at": "created_at",
        "has_coordinates": HAS_COORDINATES_EXPR,
    },
    "service_providers": {
        "id": "id",
        "service_category": "service_category",
        "city": "city",
        "verified": "verified",
        "featured": "featured",
        "reac_certified": "reac_certified",
        "rating": "rating",
        "review_count": "review_count",
        "company_name": "company_name",
        "date_joined": "date_joined",
    },
}

_COMPARISONS = {
    Op.EQ: "{expr} = ?",
    Op.CONTAINS: "contains(lower({expr}), lower(?))",
    Op.GTE: "{expr} >= ?",
    Op.LTE: "{expr} <= ?",
}


@dataclass
class BuiltQuery:
    sql: str
    params: list[Any] = field(default_factory=list)


def _column(resource: str, name: str) -> str:
    columns = COLUMN_EXPRESSIONS.get(resource)
    if columns is None:
        raise ValueError(f"Unknown resource: {resource}")
    try:
        return columns[name]
    except KeyError:
        raise ValueError(f"Field {name!r} is not queryable on {resource}") from None


def _where(resource: str, predicate: Predicate) -> tuple[str, list[Any]]:
    keyword = KEYWORD_COLUMNS.get(resource, {}).get(predicate.field)
    if keyword is not None and predicate.op is Op.CONTAINS:
        term = str(predicate.value)
        parts = [_COMPARISONS[Op.CONTAINS].format(expr=column) for column in keyword]
        return "(" + " OR ".join(parts) + ")", [term] * len(parts)
    expr = _column(resource, predicate.field)
    if predicate.op is Op.HOLDS:
        return expr, []
    value = predicate.value
    if predicate.op is Op.CONTAINS:
        value = str(value)
    return _COMPARISONS[predicate.op].format(expr=expr), [value]


def _order(resource: str, ordering: Ordering) -> str:
    direction = "DESC" if ordering.descending else "ASC"
    return f"{_column(resource, ordering.field)} {direction} NULLS LAST"


def compile_spec(spec: FilterSpec) -> BuiltQuery:
    """SELECT for a spec; predicates are ANDed, values bound as parameters."""
    clauses: list[str] = []
    params: list[Any] = []
    for predicate in spec.predicates:
        clause, values = _where(spec.resource, predicate)
        clauses.append(clause)
        params.extend(values)

    sql = f"SELECT * FROM {spec.resource}"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    if spec.orderings:
        sql += " ORDER BY " + ", ".join(_order(spec.resource, o) for o in spec.orderings)
    sql += f" LIMIT {int(spec.limit)} OFFSET {int(spec.offset)}"
    return BuiltQuery(sql=sql, params=params)
