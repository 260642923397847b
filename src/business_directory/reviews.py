from __future__ import annotations

import logging
import math
import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from .errors import ConflictError, InvalidRequestError, NotFoundError
from .models import Business, Review, ReviewResponse, User
from .serializers import response_to_dict, review_to_dict

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 1000


def _validate_rating(rating) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise InvalidRequestError("Rating must be an integer between 1 and 5")
    return rating


def create_review(
    session: Session,
    user: User,
    business_id: uuid.UUID,
    rating: int,
    content: Optional[str],
    title: Optional[str] = None,
) -> dict:
    rating = _validate_rating(rating)
    if content is not None and len(content) > MAX_CONTENT_LENGTH:
        raise InvalidRequestError(f"Review must be at most {MAX_CONTENT_LENGTH} characters")

    business = session.execute(
        select(Business).where(Business.id == business_id).where(Business.status == "ACTIVE")
    ).scalar_one_or_none()
    if business is None:
        raise NotFoundError("Business not found")

    existing = session.execute(
        select(Review.id).where(Review.business_id == business_id).where(Review.user_id == user.id)
    ).first()
    if existing is not None:
        raise ConflictError("You have already reviewed this business")

    review = Review(
        business_id=business.id,
        user_id=user.id,
        rating=rating,
        title=title,
        content=content,
        is_hidden=False,
    )
    session.add(review)
    session.flush()
    logger.info("Review %s added to business %s", review.id, business.id)
    return review_to_dict(review, include_business=True)


def list_business_reviews(session: Session, business_id: uuid.UUID, page: int = 1, limit: int = 10) -> dict:
    """Visible reviews for one listing, newest first."""
    visible = [Review.business_id == business_id, Review.is_hidden.is_(False)]
    total = int(session.execute(select(func.count(Review.id)).where(*visible)).scalar() or 0)
    reviews = session.execute(
        select(Review)
        .where(*visible)
        .options(selectinload(Review.user), selectinload(Review.owner_response))
        .order_by(Review.created_at.desc(), Review.id)
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()

    total_pages = math.ceil(total / limit)
    return {
        "reviews": [review_to_dict(review) for review in reviews],
        "pagination": {
            "page": page,
            "limit": limit,
            "totalReviews": total,
            "totalPages": total_pages,
            "hasMore": page < total_pages,
        },
    }


def respond_to_review(
    session: Session,
    owner: User,
    business_id: uuid.UUID,
    review_id: uuid.UUID,
    content: str,
) -> dict:
    business = session.execute(
        select(Business).where(Business.id == business_id).where(Business.owner_id == owner.id)
    ).scalar_one_or_none()
    if business is None:
        raise NotFoundError("Business not found or access denied")

    review = session.execute(
        select(Review).where(Review.id == review_id).where(Review.business_id == business_id)
    ).scalar_one_or_none()
    if review is None:
        raise NotFoundError("Review not found")
    existing = session.execute(select(ReviewResponse.id).where(ReviewResponse.review_id == review.id)).first()
    if existing is not None:
        raise ConflictError("Response already exists for this review")

    response = ReviewResponse(owner_id=owner.id, content=content)
    review.owner_response = response
    session.flush()
    return {"success": True, "response": response_to_dict(response)}


def search_reviews(
    session: Session,
    business_id: Optional[uuid.UUID] = None,
    user_id: Optional[uuid.UUID] = None,
    rating: Optional[int] = None,
    is_hidden: Optional[bool] = None,
    limit: int = 10,
    offset: int = 0,
) -> list[dict]:
    stmt = select(Review).options(
        selectinload(Review.user),
        selectinload(Review.business),
        selectinload(Review.owner_response),
    )
    if business_id is not None:
        stmt = stmt.where(Review.business_id == business_id)
    if user_id is not None:
        stmt = stmt.where(Review.user_id == user_id)
    if rating is not None:
        stmt = stmt.where(Review.rating == rating)
    if is_hidden is not None:
        stmt = stmt.where(Review.is_hidden.is_(is_hidden))

    reviews = session.execute(
        stmt.order_by(Review.created_at.desc(), Review.id).offset(offset).limit(limit)
    ).scalars().all()
    return [review_to_dict(review, include_business=True) for review in reviews]
