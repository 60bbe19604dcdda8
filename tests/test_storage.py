"""Tests for DuckDB storage and filtered query execution."""

from pathlib import Path

import pytest

from listing_engine import geo
from listing_engine.filters import PROPERTIES, PROVIDERS, FilterQueryBuilder, build_filter_spec
from listing_engine.models import AggregateStats
from listing_engine.normalize import normalize
from listing_engine.storage import Storage, StoreError, compile_spec, export_csv, export_json


def _search(storage: Storage, params: dict, catalog=PROVIDERS) -> list[dict]:
    return FilterQueryBuilder(catalog, store=storage).search(params)


class TestCompile:
    """Tests for FilterSpec -> SQL compilation."""

    def test_values_are_bound_not_interpolated(self) -> None:
        built = compile_spec(build_filter_spec({"city": "x' OR '1'='1", "minRating": "4"}))
        assert "x' OR" not in built.sql
        assert built.params == ["x' OR '1'='1", 4.0]
        assert built.sql.startswith("SELECT * FROM service_providers WHERE ")
        assert built.sql.endswith("LIMIT 20 OFFSET 0")

    def test_no_predicates_no_where(self) -> None:
        built = compile_spec(build_filter_spec({"limit": "5", "offset": "10"}))
        assert " WHERE " not in built.sql
        assert built.sql.endswith("LIMIT 5 OFFSET 10")
        assert "ORDER BY featured DESC NULLS LAST, rating DESC NULLS LAST, id ASC NULLS LAST" in built.sql

    def test_keyword_term_bound_once_per_column(self) -> None:
        built = compile_spec(build_filter_spec({"searchTerm": "block 8", "status": "sold"}, PROPERTIES))
        assert built.params == ["sold", "block 8", "block 8", "block 8", "block 8"]
        assert "contains(lower(description), lower(?))" in built.sql
        assert "block 8" not in built.sql

    def test_huge_offset_stays_in_range(self) -> None:
        built = compile_spec(build_filter_spec({"offset": "1e20", "limit": "1e20"}))
        assert built.sql.endswith(f"LIMIT 100 OFFSET {2**31 - 1}")


class TestProviderQueries:
    """Tests for provider search against a seeded store."""

    def test_default_order_featured_then_rating(self, seeded_storage: Storage) -> None:
        rows = _search(seeded_storage, {})
        assert [r["company_name"] for r in rows] == [
            "Okavango Electrical",
            "Chobe Pipes",
            "Kalahari Plumbing",
        ]

    def test_conjunctive_filters(self, seeded_storage: Storage) -> None:
        rows = _search(seeded_storage, {"category": "plumbing", "city": "gaborone", "minRating": "4.6"})
        assert [r["company_name"] for r in rows] == ["Chobe Pipes"]

    def test_city_is_case_insensitive_substring(self, seeded_storage: Storage) -> None:
        rows = _search(seeded_storage, {"city": "GABORONE"})
        assert {r["company_name"] for r in rows} == {"Kalahari Plumbing", "Chobe Pipes"}

    def test_boolean_filters(self, seeded_storage: Storage) -> None:
        assert [r["company_name"] for r in _search(seeded_storage, {"featured": "true"})] == ["Okavango Electrical"]
        assert len(_search(seeded_storage, {"verified": "1"})) == 2
        assert [r["company_name"] for r in _search(seeded_storage, {"certified": "true"})] == ["Kalahari Plumbing"]

    def test_hostile_input_returns_normally(self, seeded_storage: Storage) -> None:
        rows = _search(seeded_storage, {"city": "'; DROP TABLE service_providers; --", "sortBy": "1; DROP"})
        assert rows == []
        assert len(_search(seeded_storage, {})) == 3

    def test_sort_by_name(self, seeded_storage: Storage) -> None:
        rows = _search(seeded_storage, {"sortBy": "name"})
        assert [r["company_name"] for r in rows] == ["Chobe Pipes", "Kalahari Plumbing", "Okavango Electrical"]

    def test_pages_are_stable_and_disjoint(self, storage: Storage) -> None:
        # Equal sort keys everywhere, so only the id tiebreak orders rows
        for i in range(7):
            storage.save_provider({"companyName": f"Provider {i}", "rating": 4, "featured": False})
        seen: list[int] = []
        for offset in (0, 3, 6):
            rows = _search(storage, {"sortBy": "rating", "limit": "3", "offset": str(offset)})
            seen.extend(r["id"] for r in rows)
        assert seen == sorted(seen)
        assert len(seen) == len(set(seen)) == 7

    def test_limit_zero(self, seeded_storage: Storage) -> None:
        assert _search(seeded_storage, {"limit": "-5"}) == []

    def test_huge_pagination_values(self, seeded_storage: Storage) -> None:
        assert _search(seeded_storage, {"offset": "1e20"}) == []
        assert len(_search(seeded_storage, {"limit": "1e20"})) == 3

    def test_service_categories(self, seeded_storage: Storage) -> None:
        assert seeded_storage.service_categories() == ["electrical", "plumbing"]

    def test_service_categories_empty_store(self, storage: Storage) -> None:
        storage.save_provider({"companyName": "No category"})
        assert storage.service_categories() == []


class TestPropertyQueries:
    """Tests for property search against a seeded store."""

    def test_default_is_active_newest_first(self, seeded_storage: Storage) -> None:
        rows = _search(seeded_storage, {}, PROPERTIES)
        assert [r["title"] for r in rows] == ["Phakalane villa", "Francistown flat", "Block 8 townhouse"]

    def test_price_compares_on_formatted_text(self, seeded_storage: Storage) -> None:
        rows = _search(seeded_storage, {"minPrice": "800000", "sortBy": "price_low"}, PROPERTIES)
        assert [r["title"] for r in rows] == ["Block 8 townhouse", "Phakalane villa"]

    def test_bedrooms_and_type(self, seeded_storage: Storage) -> None:
        rows = _search(seeded_storage, {"minBedrooms": "2", "propertyType": "house"}, PROPERTIES)
        assert [r["title"] for r in rows] == ["Phakalane villa"]

    def test_status_override(self, seeded_storage: Storage) -> None:
        rows = _search(seeded_storage, {"status": "sold"}, PROPERTIES)
        assert [r["title"] for r in rows] == ["Sold plot"]

    def test_price_sort_defaults_to_descending(self, seeded_storage: Storage) -> None:
        rows = _search(seeded_storage, {"sortBy": "price"}, PROPERTIES)
        assert [r["title"] for r in rows] == ["Phakalane villa", "Block 8 townhouse", "Francistown flat"]
        rows = _search(seeded_storage, {"sortBy": "price", "sortOrder": "asc"}, PROPERTIES)
        assert [r["title"] for r in rows] == ["Francistown flat", "Block 8 townhouse", "Phakalane villa"]

    def test_for_sale_matches_active_rows(self, seeded_storage: Storage) -> None:
        rows = _search(seeded_storage, {"status": "for_sale"}, PROPERTIES)
        assert {r["title"] for r in rows} == {"Block 8 townhouse", "Phakalane villa", "Francistown flat"}

    def test_keyword_matches_any_text_column(self, seeded_storage: Storage) -> None:
        assert [r["title"] for r in _search(seeded_storage, {"searchTerm": "PHAKALANE"}, PROPERTIES)] == [
            "Phakalane villa"
        ]
        rows = _search(seeded_storage, {"location": "gaborone", "sortBy": "price_low"}, PROPERTIES)
        assert [r["title"] for r in rows] == ["Block 8 townhouse", "Phakalane villa"]
        assert _search(seeded_storage, {"searchTerm": "serowe"}, PROPERTIES) == []

    def test_keyword_matches_address_and_description(self, storage: Storage) -> None:
        storage.save_property({"title": "Home", "address": "Plot 77, Tlokweng", "status": "active"})
        storage.save_property({"title": "Flat", "description": "Close to Tlokweng border", "status": "active"})
        storage.save_property({"title": "Other", "status": "active"})
        rows = _search(storage, {"searchTerm": "tlokweng", "sortBy": "date", "sortOrder": "asc"}, PROPERTIES)
        assert {r["title"] for r in rows} == {"Home", "Flat"}

    def test_require_valid_coordinates(self, seeded_storage: Storage) -> None:
        params = {"requireValidCoordinates": "true", "status": "sold"}
        assert _search(seeded_storage, params, PROPERTIES) == []
        rows = _search(seeded_storage, {"requireValidCoordinates": "true"}, PROPERTIES)
        assert len(rows) == 3
        assert all(geo.is_valid(r["latitude"], r["longitude"]) for r in rows)
        assert len(_search(seeded_storage, {"requireValidCoordinates": "false", "status": "sold"}, PROPERTIES)) == 1

    @pytest.mark.parametrize(
        "lat,lng", [("91", "25.9"), ("-24.6", "181"), ("abc", "25.9"), (None, "25.9"), ("-24.6", "0")]
    )
    def test_invalid_coordinates_excluded(self, storage: Storage, lat, lng) -> None:
        storage.save_property({"title": "Bad", "latitude": lat, "longitude": lng})
        storage.save_property({"title": "Good", "latitude": " -24.6 ", "longitude": "25.9"})
        rows = _search(storage, {"requireValidCoordinates": "1"}, PROPERTIES)
        assert [r["title"] for r in rows] == ["Good"]

    def test_rows_normalize(self, seeded_storage: Storage) -> None:
        rows = _search(seeded_storage, {"city": "francistown"}, PROPERTIES)
        listing = normalize(rows[0])
        assert listing.price == 6500
        assert listing.price_period == "per_month"
        assert listing.latitude == pytest.approx(-21.17)
        assert listing.reference == f"BD-{rows[0]['id']}"


class TestWrites:
    """Tests for row writes and reviews."""

    def test_save_property_keeps_raw_text(self, storage: Storage, raw_property: dict) -> None:
        pid = storage.save_property(raw_property)
        assert pid == 42
        row = storage.all_properties()[0]
        assert row["price"] == "P 1,250,000"
        assert row["latitude"] == "-24.5633"
        assert row["images"] == raw_property["images"]

    def test_save_property_serializes_lists(self, storage: Storage) -> None:
        storage.save_property({"title": "x", "images": ["a.jpg"], "features": ("Pool",)})
        row = storage.all_properties()[0]
        assert row["images"] == '["a.jpg"]'
        assert row["features"] == '["Pool"]'
        assert row["status"] == "active"

    def test_generated_ids_increase(self, storage: Storage) -> None:
        first = storage.save_provider({"companyName": "A"})
        second = storage.save_provider({"companyName": "B"})
        assert second > first

    def test_reviews_for_provider_returns_every_review(self, storage: Storage) -> None:
        pid = storage.save_provider({"companyName": "A"})
        other = storage.save_provider({"companyName": "B"})
        storage.insert_review(pid, 5)
        storage.insert_review(other, 2)
        storage.insert_review(pid, 1, review="late", reviewer_name="Kabo")
        assert [r.rating for r in storage.reviews_for_provider(pid)] == [5, 1]

    def test_update_review(self, storage: Storage) -> None:
        pid = storage.save_provider({"companyName": "A"})
        review = storage.insert_review(pid, 3, review="ok")
        updated = storage.update_review(review.id, rating=4)
        assert updated.rating == 4
        assert updated.review == "ok"
        assert storage.update_review(9999, rating=4) is None

    def test_update_provider_stats(self, storage: Storage) -> None:
        pid = storage.save_provider({"companyName": "A"})
        assert storage.update_provider_stats(pid, AggregateStats(2, 4.5))
        row = storage.get_provider(pid)
        assert (row["review_count"], row["rating"]) == (2, 4.5)
        assert not storage.update_provider_stats(9999, AggregateStats(0, 0.0))

    def test_transaction_rolls_back(self, storage: Storage) -> None:
        pid = storage.save_provider({"companyName": "A"})
        with pytest.raises(RuntimeError):
            with storage.transaction():
                storage.insert_review(pid, 5)
                raise RuntimeError("boom")
        assert storage.reviews_for_provider(pid) == []

    def test_store_errors_are_wrapped(self, storage: Storage) -> None:
        with pytest.raises(StoreError):
            storage.insert_review(None, 5)

    def test_file_backed_store(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "engine.duckdb"
        store = Storage(db_path)
        store.save_provider({"companyName": "A"})
        store.close()
        reopened = Storage(db_path)
        assert reopened.get_provider(1)["company_name"] == "A"
        reopened.close()


def test_export(tmp_path: Path, raw_property: dict) -> None:
    listings = [normalize(raw_property)]
    csv_path = tmp_path / "out" / "listings.csv"
    json_path = tmp_path / "out" / "listings.json"
    export_csv(listings, csv_path)
    export_json(listings, json_path)
    lines = csv_path.read_text(encoding="utf-8").splitlines()
    assert lines[0].startswith("reference,title,")
    assert lines[1].startswith("BD-42,")
    assert '"count": 1' in json_path.read_text(encoding="utf-8")
