"""Provider rating aggregates derived from review rows.

Derived fields are always recomputed from the full set of a provider's reviews
rather than adjusted incrementally, so a recalculation is idempotent and
repairs any drift left by earlier failures.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from .models import AggregateStats, Review
from .storage import Storage

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5
_ONE_DECIMAL = Decimal("0.1")


def compute_stats(ratings: Iterable[int | float]) -> AggregateStats:
    """Count and mean of ``ratings``, mean rounded half-up to one decimal.

    No ratings gives ``AggregateStats(0, 0.0)``.
    """
    values = [Decimal(str(r)) for r in ratings]
    if not values:
        return AggregateStats(review_count=0, rating=0.0)
    mean = sum(values) / Decimal(len(values))
    return AggregateStats(
        review_count=len(values),
        rating=float(mean.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP)),
    )


def validate_rating(value: Any) -> int:
    """Ratings are whole stars from 1 to 5."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Rating must be an integer between {MIN_RATING} and {MAX_RATING}, got {value!r}")
    if not MIN_RATING <= value <= MAX_RATING:
        raise ValueError(f"Rating must be between {MIN_RATING} and {MAX_RATING}, got {value}")
    return value


class AggregateRecalculator:
    """Recomputes a provider's review count and average rating."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    def recalculate(self, provider_id: int) -> AggregateStats:
        reviews = self.storage.reviews_for_provider(provider_id)
        stats = compute_stats(r.rating for r in reviews)
        if not self.storage.update_provider_stats(provider_id, stats):
            logger.warning("Provider %s not found; aggregates not persisted", provider_id)
        else:
            logger.debug("Provider %s aggregates: %s", provider_id, stats.to_dict())
        return stats


class ReviewService:
    """
    Review writes. Each write and the recalculation it triggers share one
    store transaction, so derived fields never diverge from the reviews.
    """

    def __init__(self, storage: Storage, recalculator: AggregateRecalculator | None = None) -> None:
        self.storage = storage
        self.recalculator = recalculator or AggregateRecalculator(storage)

    def create_review(
        self,
        provider_id: int,
        rating: Any,
        review: str | None = None,
        reviewer_name: str | None = None,
        user_id: int | None = None,
    ) -> tuple[Review, AggregateStats]:
        rating = validate_rating(rating)
        if self.storage.get_provider(provider_id) is None:
            raise ValueError(f"Unknown provider: {provider_id}")
        with self.storage.transaction():
            created = self.storage.insert_review(
                provider_id,
                rating,
                review=review,
                reviewer_name=reviewer_name,
                user_id=user_id,
            )
            stats = self.recalculator.recalculate(provider_id)
        logger.info("Review %s added for provider %s", created.id, provider_id)
        return created, stats

    def update_review(
        self,
        review_id: int,
        rating: Any = None,
        review: str | None = None,
    ) -> tuple[Review, AggregateStats]:
        """Edit a review's rating or text and recalculate its provider."""
        if rating is not None:
            rating = validate_rating(rating)
        with self.storage.transaction():
            updated = self.storage.update_review(
                review_id,
                rating=rating,
                review=review,
            )
            if updated is None:
                raise ValueError(f"Unknown review: {review_id}")
            stats = self.recalculator.recalculate(updated.provider_id)
        return updated, stats
