"""Export canonical listings and providers to CSV and JSON."""

from __future__ import annotations

import csv
import json
from datetime import datetime
from pathlib import Path
from typing import Any

from ..models import Listing, Provider


def _serialize(obj: Any) -> Any:
    """JSON serializer for datetime and other objects."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


LISTING_CSV_FIELDS = [
    "reference",
    "title",
    "address",
    "city",
    "state",
    "price",
    "currency",
    "price_period",
    "beds",
    "baths",
    "area",
    "property_type",
    "status",
    "latitude",
    "longitude",
    "url",
]


def export_csv(items: list[Listing], path: Path | str) -> None:
    """Export listings to CSV, one row per listing in the given order."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=LISTING_CSV_FIELDS)
        writer.writeheader()
        for listing in items:
            row = listing.to_dict()
            writer.writerow({k: row.get(k) for k in LISTING_CSV_FIELDS})


def export_json(items: list[Listing] | list[Provider], path: Path | str) -> None:
    """Export full listing or provider documents to JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "exported_at": datetime.now().isoformat(),
        "count": len(items),
        "results": [item.to_dict() for item in items],
    }

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=_serialize)
