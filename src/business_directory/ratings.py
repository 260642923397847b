"""Derived review ratings.

A business never stores its rating. It is the mean of its visible reviews,
rounded half up to one decimal, and zero when there are no visible reviews.
"""
from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .models import Review


@dataclass(frozen=True)
class RatingSummary:
    rating: float
    review_count: int


EMPTY_SUMMARY = RatingSummary(rating=0, review_count=0)


def round_rating(value: float) -> float:
    # Half up, not Python's half-to-even round().
    return math.floor(value * 10 + 0.5) / 10


def summarize_ratings(ratings: Iterable[int]) -> RatingSummary:
    values = list(ratings)
    if not values:
        return EMPTY_SUMMARY
    return RatingSummary(rating=round_rating(sum(values) / len(values)), review_count=len(values))


def rating_distribution(ratings: Iterable[int]) -> dict[int, int]:
    distribution = {star: 0 for star in range(1, 6)}
    for value in ratings:
        if value in distribution:
            distribution[value] += 1
    return distribution


def visible_review_aggregates():
    """Subquery of (business_id, avg_rating, rating_total, review_count) over visible reviews."""
    return (
        select(
            Review.business_id.label("business_id"),
            func.avg(Review.rating).label("avg_rating"),
            func.sum(Review.rating).label("rating_total"),
            func.count(Review.id).label("review_count"),
        )
        .where(Review.is_hidden.is_(False))
        .group_by(Review.business_id)
        .subquery("review_aggregates")
    )


def load_rating_summaries(session: Session, business_ids: list[uuid.UUID]) -> dict[uuid.UUID, RatingSummary]:
    if not business_ids:
        return {}
    rows = session.execute(
        select(Review.business_id, func.sum(Review.rating), func.count(Review.id))
        .where(Review.business_id.in_(business_ids))
        .where(Review.is_hidden.is_(False))
        .group_by(Review.business_id)
    ).all()

    summaries = {business_id: EMPTY_SUMMARY for business_id in business_ids}
    for business_id, total, count in rows:
        summaries[business_id] = RatingSummary(rating=round_rating(int(total) / int(count)), review_count=int(count))
    return summaries


def min_rating_threshold(min_rating: float) -> int:
    """Smallest displayed rating, in tenths, that satisfies ``min_rating``."""
    return math.ceil(round(min_rating * 10, 6))
