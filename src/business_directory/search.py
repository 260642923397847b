"""Directory search and listing queries.

Shared by the HTTP routes and the stdio tool server. Filters are pushed into
SQL; rating and review count are derived from visible reviews after fetch.

``sort_by="rating"`` and ``sort_by="reviews"`` have two modes:

- ``page``: fetch one page under the fallback order (plan tier, then newest)
  and re-sort only that page in memory. The globally best-rated business can
  be missing from page 1 when it is not in the top N by tier/recency.
- ``global``: order by the aggregated rating in SQL before the limit.
"""
from __future__ import annotations

import uuid
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import String, case, column, func, or_, select
from sqlalchemy.orm import Session, selectinload

from .models import (
    AbuseReport,
    Business,
    BusinessStatus,
    Category,
    Lead,
    PLAN_RANK,
    PlanType,
    Review,
)
from .pagination import Pagination
from .ratings import (
    load_rating_summaries,
    min_rating_threshold,
    rating_distribution,
    summarize_ratings,
    visible_review_aggregates,
)
from .serializers import (
    business_to_dict,
    category_summary,
    category_to_dict,
    lead_to_dict,
    review_to_dict,
    user_summary,
)


SortKey = Literal["relevance", "rating", "newest", "reviews"]
RatingSortMode = Literal["page", "global"]

DEFAULT_LIMIT = 12
MAX_LIMIT = 100


class SearchParams(BaseModel):
    model_config = ConfigDict(extra="forbid")

    query: Optional[str] = Field(None, max_length=200)
    category_id: Optional[uuid.UUID] = None
    category_slug: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=100)
    city: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    # None means any status; public callers keep the ACTIVE default.
    status: Optional[BusinessStatus] = "ACTIVE"
    plan_type: Optional[PlanType] = None
    # Any of these tags, compared case-insensitively.
    tags: Optional[list[str]] = None
    min_rating: Optional[float] = Field(None, ge=1, le=5)
    sort_by: SortKey = "relevance"
    page: int = Field(1, ge=1)
    limit: int = Field(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT)
    offset: Optional[int] = Field(None, ge=0)
    rating_sort: RatingSortMode = "page"

    @field_validator("query", "category_slug", "location", "city", "country", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value):
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, list):
            value = [tag.strip() if isinstance(tag, str) else tag for tag in value]
            value = [tag for tag in value if tag != ""] or None
        return value


def plan_rank_expr():
    return case(PLAN_RANK, value=Business.plan_type, else_=-1)


def fallback_order() -> list:
    return [plan_rank_expr().desc(), Business.created_at.desc(), Business.id]


def _array_elements(array_column, dialect: str):
    """Table of the string elements of a JSON array column, one ``value`` per row."""
    value = column("value", String)
    if dialect == "postgresql":
        # Renders AS anon_1(value) so the column name is fixed.
        return func.jsonb_array_elements_text(array_column).table_valued(value).render_derived()
    return func.json_each(array_column).table_valued(value)


def _any_element_contains(array_column, text: str, dialect: str):
    elements = _array_elements(array_column, dialect)
    return select(1).select_from(elements).where(elements.c.value.icontains(text, autoescape=True)).exists()


def _any_element_in(array_column, wanted: list[str], dialect: str):
    elements = _array_elements(array_column, dialect)
    return select(1).select_from(elements).where(func.lower(elements.c.value).in_(wanted)).exists()


def search_filters(params: SearchParams, dialect: str = "postgresql") -> list:
    filters = []
    if params.status:
        filters.append(Business.status == params.status)
    if params.query:
        filters.append(
            or_(
                Business.name.icontains(params.query, autoescape=True),
                Business.description.icontains(params.query, autoescape=True),
                _any_element_contains(Business.services, params.query, dialect),
                _any_element_contains(Business.tags, params.query, dialect),
            )
        )
    if params.category_id:
        filters.append(Business.category_id == params.category_id)
    if params.category_slug:
        filters.append(Business.category_id.in_(select(Category.id).where(Category.slug == params.category_slug)))
    if params.location:
        filters.append(
            or_(
                Business.city.icontains(params.location, autoescape=True),
                Business.state.icontains(params.location, autoescape=True),
                Business.country.icontains(params.location, autoescape=True),
            )
        )
    if params.city:
        filters.append(func.lower(Business.city) == params.city.lower())
    if params.country:
        filters.append(func.lower(Business.country) == params.country.lower())
    if params.plan_type:
        filters.append(Business.plan_type == params.plan_type)
    if params.tags:
        filters.append(_any_element_in(Business.tags, [tag.lower() for tag in params.tags], dialect))
    if params.min_rating is not None:
        # Compares the displayed rating, rounded half up to one decimal.
        aggregates = visible_review_aggregates()
        threshold = min_rating_threshold(params.min_rating)
        filters.append(
            Business.id.in_(
                select(aggregates.c.business_id).where(
                    aggregates.c.rating_total * 20 >= aggregates.c.review_count * (2 * threshold - 1)
                )
            )
        )
    return filters


def _ordered_statement(params: SearchParams):
    stmt = select(Business)
    if params.sort_by == "newest":
        return stmt.order_by(Business.created_at.desc(), Business.id)

    if params.rating_sort == "global" and params.sort_by in ("rating", "reviews"):
        aggregates = visible_review_aggregates()
        avg_rating = func.coalesce(aggregates.c.avg_rating, 0)
        review_count = func.coalesce(aggregates.c.review_count, 0)
        stmt = stmt.outerjoin(aggregates, aggregates.c.business_id == Business.id)
        if params.sort_by == "rating":
            return stmt.order_by(avg_rating.desc(), review_count.desc(), *fallback_order())
        return stmt.order_by(review_count.desc(), avg_rating.desc(), *fallback_order())

    return stmt.order_by(*fallback_order())


def search_businesses(session: Session, params: SearchParams) -> dict:
    filters = search_filters(params, session.get_bind().dialect.name)

    total = int(session.execute(select(func.count(Business.id)).where(*filters)).scalar() or 0)

    if params.offset is not None:
        offset = params.offset
        page = offset // params.limit + 1
    else:
        page = params.page
        offset = (page - 1) * params.limit
    pagination = Pagination(page=page, limit=params.limit, total=total)

    stmt = (
        _ordered_statement(params)
        .where(*filters)
        .options(selectinload(Business.category))
        .offset(offset)
        .limit(params.limit)
    )
    rows = session.execute(stmt).scalars().all()
    summaries = load_rating_summaries(session, [row.id for row in rows])

    items = []
    for business in rows:
        item = business_to_dict(business, summaries[business.id])
        item["category"] = category_summary(business.category)
        items.append(item)

    if params.rating_sort == "page":
        # Only the fetched page is re-ordered.
        if params.sort_by == "rating":
            items.sort(key=lambda item: item["rating"], reverse=True)
        elif params.sort_by == "reviews":
            items.sort(key=lambda item: item["reviewCount"], reverse=True)

    return {"businesses": items, **pagination.as_dict()}


def get_businesses_by_category(
    session: Session,
    category_slug: str,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    sort_by: SortKey = "relevance",
    rating_sort: RatingSortMode = "page",
) -> Optional[dict]:
    category = session.execute(select(Category).where(Category.slug == category_slug)).scalar_one_or_none()
    if category is None:
        return None

    result = search_businesses(
        session,
        SearchParams(
            category_id=category.id,
            page=page,
            limit=limit,
            sort_by=sort_by,
            rating_sort=rating_sort,
        ),
    )
    result["category"] = category_to_dict(category)
    return result


def get_business_by_slug(session: Session, slug: str) -> Optional[dict]:
    business = session.execute(
        select(Business)
        .where(Business.slug == slug)
        .where(Business.status == "ACTIVE")
        .options(
            selectinload(Business.category),
            selectinload(Business.owner),
            selectinload(Business.reviews).selectinload(Review.user),
            selectinload(Business.reviews).selectinload(Review.owner_response),
        )
    ).scalar_one_or_none()
    if business is None:
        return None

    visible = sorted(
        (review for review in business.reviews if not review.is_hidden),
        key=lambda review: review.created_at,
        reverse=True,
    )
    ratings = [review.rating for review in visible]

    payload = business_to_dict(business, summarize_ratings(ratings))
    payload["category"] = category_to_dict(business.category) if business.category else None
    payload["owner"] = user_summary(business.owner)
    payload["reviews"] = [review_to_dict(review) for review in visible]
    payload["ratingDistribution"] = {str(star): count for star, count in rating_distribution(ratings).items()}
    return payload


def get_business_details(session: Session, business_id: uuid.UUID) -> Optional[dict]:
    """Full record for operators: any status, latest reviews and leads, counts."""
    business = session.execute(
        select(Business)
        .where(Business.id == business_id)
        .options(selectinload(Business.category), selectinload(Business.owner))
    ).scalar_one_or_none()
    if business is None:
        return None

    reviews = session.execute(
        select(Review)
        .where(Review.business_id == business_id)
        .options(selectinload(Review.user), selectinload(Review.owner_response))
        .order_by(Review.created_at.desc())
        .limit(5)
    ).scalars().all()
    leads = session.execute(
        select(Lead).where(Lead.business_id == business_id).order_by(Lead.created_at.desc()).limit(5)
    ).scalars().all()

    def _count(model) -> int:
        return int(session.execute(select(func.count(model.id)).where(model.business_id == business_id)).scalar() or 0)

    summary = load_rating_summaries(session, [business.id])[business.id]
    payload = business_to_dict(business, summary)
    payload["owner"] = {**user_summary(business.owner), "role": business.owner.role}
    payload["category"] = category_to_dict(business.category) if business.category else None
    payload["reviews"] = [review_to_dict(review) for review in reviews]
    payload["leads"] = [lead_to_dict(lead) for lead in leads]
    payload["counts"] = {
        "reviews": _count(Review),
        "leads": _count(Lead),
        "abuseReports": _count(AbuseReport),
    }
    return payload


def get_featured_businesses(session: Session, limit: int = 6) -> list[dict]:
    result = search_businesses(
        session,
        SearchParams(plan_type="VIP", sort_by="rating", rating_sort="global", limit=limit),
    )
    return result["businesses"]
