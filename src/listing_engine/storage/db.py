"""DuckDB storage for properties, service providers and their reviews."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import duckdb

from ..filters import FilterSpec
from ..models import AggregateStats, Review
from ..normalize import (
    parse_bool,
    parse_datetime,
    parse_int,
    parse_number,
    parse_text,
)
from .query import compile_spec

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """A DuckDB operation failed."""


def _raw_text(value: Any) -> str | None:
    """Keep loosely-typed values (prices, coordinates) as the text they arrived as."""
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _json_text(value: Any) -> str | None:
    """Collections are stored serialized; strings pass through untouched."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value))
    return None


def _flag(value: Any) -> bool:
    return bool(parse_bool(value))


# (column, accepted record keys, converter)
_PROPERTY_COLUMNS: tuple[tuple[str, tuple[str, ...], Callable[[Any], Any]], ...] = (
    ("title", ("title",), parse_text),
    ("description", ("description",), parse_text),
    ("address", ("address",), parse_text),
    ("city", ("city",), parse_text),
    ("state", ("state",), parse_text),
    ("zip_code", ("zipCode", "zip_code"), parse_text),
    ("latitude", ("latitude",), _raw_text),
    ("longitude", ("longitude",), _raw_text),
    ("price", ("price",), _raw_text),
    ("bedrooms", ("bedrooms",), parse_number),
    ("bathrooms", ("bathrooms",), _raw_text),
    ("square_feet", ("squareFeet", "square_feet"), parse_number),
    ("area_build", ("areaBuild", "area_build"), parse_number),
    ("lot_size", ("lotSize", "lot_size"), parse_number),
    ("year_built", ("yearBuilt", "year_built"), parse_int),
    ("property_type", ("propertyType", "property_type"), parse_text),
    ("listing_type", ("listingType", "listing_type"), parse_text),
    ("status", ("status",), parse_text),
    ("images", ("images",), _json_text),
    ("features", ("features",), _json_text),
    ("hoa_fees", ("hoaFees", "hoa_fees"), parse_number),
    ("days_on_market", ("daysOnMarket", "days_on_market"), parse_int),
    ("agency_name", ("agencyName", "agency_name"), parse_text),
    ("agent_name", ("agentName", "agent_name"), parse_text),
    ("agent_phone", ("agentPhone", "agent_phone"), parse_text),
    ("agent_email", ("agentEmail", "agent_email"), parse_text),
    ("created_at", ("createdAt", "created_at"), parse_datetime),
)

_PROVIDER_COLUMNS: tuple[tuple[str, tuple[str, ...], Callable[[Any], Any]], ...] = (
    ("company_name", ("companyName", "company_name"), parse_text),
    ("contact_person", ("contactPerson", "contact_person"), parse_text),
    ("email", ("email",), parse_text),
    ("phone_number", ("phoneNumber", "phone_number", "phone"), parse_text),
    ("service_category", ("serviceCategory", "service_category", "category"), parse_text),
    ("city", ("city",), parse_text),
    ("address", ("address",), parse_text),
    ("description", ("description",), parse_text),
    ("website_url", ("websiteUrl", "website_url"), parse_text),
    ("logo_url", ("logoUrl", "logo_url"), parse_text),
    ("specialties", ("specialties",), _json_text),
    ("rating", ("rating",), lambda v: parse_number(v) or 0.0),
    ("review_count", ("reviewCount", "review_count"), lambda v: max(0, parse_int(v) or 0)),
    ("verified", ("verified",), _flag),
    ("featured", ("featured",), _flag),
    ("reac_certified", ("reacCertified", "reac_certified", "certified"), _flag),
    ("date_joined", ("dateJoined", "date_joined"), parse_datetime),
)


def _extract(record: Mapping[str, Any], columns) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for column, keys, convert in columns:
        raw = next((record[k] for k in keys if record.get(k) is not None), None)
        values[column] = convert(raw)
    return values


def _review_from_row(row: dict[str, Any]) -> Review:
    return Review(
        id=row["id"],
        provider_id=row["provider_id"],
        rating=row["rating"],
        review=row.get("review"),
        reviewer_name=row.get("reviewer_name"),
        user_id=row.get("user_id"),
        created_at=row.get("created_at"),
    )


class Storage:
    """
    DuckDB storage for properties, service_providers and service_reviews.

    Rows keep the loosely-typed shape of the web backend: prices, coordinates
    and bathrooms as text, collections as JSON text. Read paths normalize.
    """

    def __init__(self, db_path: Path | str = "listing_engine.duckdb") -> None:
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path)
        self._conn: duckdb.DuckDBPyConnection | None = None
        self._in_transaction = False

    def _connect(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            try:
                if isinstance(self.db_path, Path):
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self._conn = duckdb.connect(str(self.db_path))
                self._init_schema()
            except duckdb.Error as exc:
                self._conn = None
                raise StoreError(f"Could not open store at {self.db_path}: {exc}") from exc
        return self._conn

    def _init_schema(self) -> None:
        conn = self._conn
        for seq in ("properties_id_seq", "service_providers_id_seq", "service_reviews_id_seq"):
            conn.execute(f"CREATE SEQUENCE IF NOT EXISTS {seq} START 1")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS properties (
                id BIGINT PRIMARY KEY DEFAULT nextval('properties_id_seq'),
                title TEXT,
                description TEXT,
                address TEXT,
                city TEXT,
                state TEXT,
                zip_code TEXT,
                latitude TEXT,
                longitude TEXT,
                price TEXT,
                bedrooms DOUBLE,
                bathrooms TEXT,
                square_feet DOUBLE,
                area_build DOUBLE,
                lot_size DOUBLE,
                year_built INTEGER,
                property_type TEXT,
                listing_type TEXT,
                status TEXT DEFAULT 'active',
                images TEXT,
                features TEXT,
                hoa_fees DOUBLE,
                days_on_market INTEGER,
                agency_name TEXT,
                agent_name TEXT,
                agent_phone TEXT,
                agent_email TEXT,
                created_at TIMESTAMP
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS service_providers (
                id BIGINT PRIMARY KEY DEFAULT nextval('service_providers_id_seq'),
                company_name TEXT,
                contact_person TEXT,
                email TEXT,
                phone_number TEXT,
                service_category TEXT,
                city TEXT,
                address TEXT,
                description TEXT,
                website_url TEXT,
                logo_url TEXT,
                specialties TEXT,
                rating DOUBLE DEFAULT 0,
                review_count INTEGER DEFAULT 0,
                verified BOOLEAN DEFAULT false,
                featured BOOLEAN DEFAULT false,
                reac_certified BOOLEAN DEFAULT false,
                date_joined TIMESTAMP
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS service_reviews (
                id BIGINT PRIMARY KEY DEFAULT nextval('service_reviews_id_seq'),
                provider_id BIGINT NOT NULL,
                user_id BIGINT,
                reviewer_name TEXT,
                rating INTEGER NOT NULL,
                review TEXT,
                created_at TIMESTAMP
            )
        """)

    def _query(self, sql: str, params: list[Any] | None = None) -> list[dict[str, Any]]:
        """Run a statement and return rows as dicts keyed by column name."""
        conn = self._connect()
        try:
            cur = conn.execute(sql, params or [])
            if cur.description is None:
                return []
            cols = [d[0] for d in cur.description]
            return [dict(zip(cols, row)) for row in cur.fetchall()]
        except duckdb.Error as exc:
            raise StoreError(f"Query failed: {exc}") from exc

    def _insert(self, table: str, values: dict[str, Any], record_id: int | None) -> int:
        # Explicit ids bypass the sequence; don't mix them with generated ids in one table.
        if record_id is not None:
            values = {"id": record_id, **values}
        cols = ", ".join(values)
        marks = ", ".join("?" for _ in values)
        if record_id is not None:
            self._query(f"INSERT OR REPLACE INTO {table} ({cols}) VALUES ({marks})", list(values.values()))
            return record_id
        rows = self._query(
            f"INSERT INTO {table} ({cols}) VALUES ({marks}) RETURNING id",
            list(values.values()),
        )
        return rows[0]["id"]

    @contextmanager
    def transaction(self) -> Iterator[Storage]:
        """Group writes atomically; nested use joins the outer transaction."""
        if self._in_transaction:
            yield self
            return
        conn = self._connect()
        try:
            conn.begin()
        except duckdb.Error as exc:
            raise StoreError(f"Could not begin transaction: {exc}") from exc
        self._in_transaction = True
        try:
            yield self
        except BaseException:
            conn.rollback()
            raise
        else:
            try:
                conn.commit()
            except duckdb.Error as exc:
                raise StoreError(f"Commit failed: {exc}") from exc
        finally:
            self._in_transaction = False

    def execute(self, spec: FilterSpec) -> list[dict[str, Any]]:
        """Run a ``FilterSpec``; rows come back in its ordering."""
        built = compile_spec(spec)
        logger.debug("Executing %s with %d bound params", built.sql, len(built.params))
        return self._query(built.sql, built.params)

    def save_property(self, record: Mapping[str, Any]) -> int:
        """Insert (or replace, when ``id`` is given) one raw property record."""
        values = _extract(record, _PROPERTY_COLUMNS)
        values["status"] = values["status"] or "active"
        values["created_at"] = values["created_at"] or datetime.now()
        return self._insert("properties", values, parse_int(record.get("id")))

    def save_provider(self, record: Mapping[str, Any]) -> int:
        """Insert (or replace, when ``id`` is given) one raw provider record."""
        values = _extract(record, _PROVIDER_COLUMNS)
        values["date_joined"] = values["date_joined"] or datetime.now()
        return self._insert("service_providers", values, parse_int(record.get("id")))

    def all_properties(self) -> list[dict[str, Any]]:
        return self._query("SELECT * FROM properties ORDER BY id")

    def service_categories(self) -> list[str]:
        """Distinct provider categories, for populating the category filter."""
        rows = self._query(
            "SELECT DISTINCT service_category FROM service_providers "
            "WHERE service_category IS NOT NULL ORDER BY service_category"
        )
        return [r["service_category"] for r in rows]

    def get_provider(self, provider_id: int) -> dict[str, Any] | None:
        rows = self._query("SELECT * FROM service_providers WHERE id = ?", [provider_id])
        return rows[0] if rows else None

    def insert_review(
        self,
        provider_id: int,
        rating: int,
        review: str | None = None,
        reviewer_name: str | None = None,
        user_id: int | None = None,
    ) -> Review:
        rows = self._query(
            """
            INSERT INTO service_reviews
            (provider_id, user_id, reviewer_name, rating, review, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            RETURNING *
            """,
            [provider_id, user_id, reviewer_name, rating, review, datetime.now()],
        )
        return _review_from_row(rows[0])

    def update_review(
        self,
        review_id: int,
        rating: int | None = None,
        review: str | None = None,
    ) -> Review | None:
        """Update the given fields of a review; ``None`` if it does not exist."""
        changes = {k: v for k, v in (("rating", rating), ("review", review)) if v is not None}
        if not changes:
            rows = self._query("SELECT * FROM service_reviews WHERE id = ?", [review_id])
        else:
            assignments = ", ".join(f"{k} = ?" for k in changes)
            rows = self._query(
                f"UPDATE service_reviews SET {assignments} WHERE id = ? RETURNING *",
                [*changes.values(), review_id],
            )
        return _review_from_row(rows[0]) if rows else None

    def reviews_for_provider(self, provider_id: int) -> list[Review]:
        rows = self._query("SELECT * FROM service_reviews WHERE provider_id = ? ORDER BY id", [provider_id])
        return [_review_from_row(r) for r in rows]

    def update_provider_stats(self, provider_id: int, stats: AggregateStats) -> bool:
        """Persist derived rating/review count; False if the provider is missing."""
        rows = self._query(
            "UPDATE service_providers SET rating = ?, review_count = ? WHERE id = ? RETURNING id",
            [stats.rating, stats.review_count, provider_id],
        )
        return bool(rows)

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
