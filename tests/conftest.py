"""Pytest fixtures."""

from collections.abc import Iterator
from datetime import datetime

import pytest

from listing_engine.storage import Storage


@pytest.fixture
def raw_property() -> dict:
    """One stored property row in the web backend's camelCase shape."""
    return {
        "id": 42,
        "title": "Family home in Phakalane",
        "address": "Plot 123, Phakalane",
        "city": "Gaborone",
        "state": "South-East",
        "zipCode": "0000",
        "latitude": "-24.5633",
        "longitude": "25.9690",
        "price": "P 1,250,000",
        "bedrooms": 3,
        "bathrooms": "2.5",
        "squareFeet": 1800,
        "propertyType": "house",
        "listingType": "owner",
        "status": "active",
        "images": '["front.jpg", "kitchen.jpg", "garden.jpg"]',
        "features": '["Borehole", "Solar geyser", "Double garage", "Staff quarters", "Pool"]',
        "yearBuilt": 2015,
        "agentName": "Neo Kgosi",
        "agentPhone": "+267 71 000 000",
    }


@pytest.fixture
def raw_properties() -> list[dict]:
    """Properties spread across Gaborone and Francistown."""
    return [
        {
            "title": "Block 8 townhouse",
            "city": "Gaborone",
            "latitude": "-24.6282",
            "longitude": "25.9231",
            "price": "P 850,000",
            "bedrooms": 2,
            "bathrooms": "1",
            "squareFeet": 900,
            "propertyType": "townhouse",
            "listingType": "owner",
            "status": "active",
            "createdAt": datetime(2024, 1, 1),
        },
        {
            "title": "Phakalane villa",
            "city": "Gaborone North",
            "latitude": "-24.5633",
            "longitude": "25.9690",
            "price": "P 2,400,000",
            "bedrooms": 4,
            "bathrooms": "3",
            "squareFeet": 2600,
            "propertyType": "house",
            "listingType": "owner",
            "status": "active",
            "createdAt": datetime(2024, 3, 1),
        },
        {
            "title": "Francistown flat",
            "city": "Francistown",
            "latitude": "-21.1700",
            "longitude": "27.5078",
            "price": "P 6,500",
            "bedrooms": 1,
            "bathrooms": "1",
            "squareFeet": 550,
            "propertyType": "apartment",
            "listingType": "rental",
            "status": "active",
            "createdAt": datetime(2024, 2, 1),
        },
        {
            "title": "Sold plot",
            "city": "Gaborone",
            "latitude": "0",
            "longitude": "0",
            "price": "P 300,000",
            "bedrooms": 0,
            "propertyType": "land",
            "listingType": "owner",
            "status": "sold",
            "createdAt": datetime(2024, 4, 1),
        },
    ]


@pytest.fixture
def raw_providers() -> list[dict]:
    return [
        {
            "companyName": "Kalahari Plumbing",
            "serviceCategory": "plumbing",
            "city": "Gaborone",
            "rating": 4.5,
            "reviewCount": 12,
            "verified": True,
            "featured": False,
            "reacCertified": True,
            "dateJoined": datetime(2023, 5, 1),
        },
        {
            "companyName": "Okavango Electrical",
            "serviceCategory": "electrical",
            "city": "Maun",
            "rating": 3.9,
            "reviewCount": 4,
            "verified": False,
            "featured": True,
            "dateJoined": datetime(2024, 1, 10),
        },
        {
            "companyName": "Chobe Pipes",
            "serviceCategory": "plumbing",
            "city": "Gaborone West",
            "rating": "4.8",
            "reviewCount": 30,
            "verified": True,
            "featured": False,
            "dateJoined": datetime(2022, 8, 20),
        },
    ]


@pytest.fixture
def storage() -> Iterator[Storage]:
    """Fresh in-memory store."""
    store = Storage(":memory:")
    yield store
    store.close()


@pytest.fixture
def seeded_storage(storage: Storage, raw_properties: list[dict], raw_providers: list[dict]) -> Storage:
    for record in raw_properties:
        storage.save_property(record)
    for record in raw_providers:
        storage.save_provider(record)
    return storage
