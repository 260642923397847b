from __future__ import annotations

import logging
import re
import uuid
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from .errors import ConflictError, InvalidRequestError, NotFoundError, PermissionDeniedError
from .models import ADMIN_ROLES, Business, Category, Lead, User
from .ratings import EMPTY_SUMMARY, load_rating_summaries
from .serializers import business_to_dict, category_summary

logger = logging.getLogger(__name__)

_SLUG_STRIP = re.compile(r"[^\w\s-]", re.ASCII)
_SLUG_SEPARATORS = re.compile(r"[\s_-]+")


def generate_slug(text: str) -> str:
    slug = _SLUG_STRIP.sub("", text.lower())
    slug = _SLUG_SEPARATORS.sub("-", slug)
    return slug.strip("-")


class DayHours(BaseModel):
    model_config = ConfigDict(extra="forbid")
    open: str = Field(..., max_length=10)
    close: str = Field(..., max_length=10)
    closed: bool = False


class BusinessFields(BaseModel):
    """Editable listing fields; wire names are camelCase."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    slug: Optional[str] = Field(None, max_length=120, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = Field(None, max_length=5000)
    email: Optional[str] = Field(None, max_length=254)
    phone: Optional[str] = Field(None, max_length=40)
    website: Optional[str] = Field(None, max_length=500)
    address_line1: Optional[str] = Field(None, max_length=200)
    address_line2: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    logo: Optional[str] = Field(None, max_length=500)
    services: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    working_hours: Optional[dict[str, DayHours]] = None
    category_id: Optional[uuid.UUID] = None


class BusinessCreate(BusinessFields):
    """Registration payload. Status and plan are set by the platform, never by the caller."""

    name: str = Field(..., min_length=1, max_length=200)


class BusinessUpdate(BusinessFields):
    name: Optional[str] = Field(None, min_length=1, max_length=200)


def _ensure_slug_free(session: Session, slug: str, exclude_id: Optional[uuid.UUID] = None) -> None:
    stmt = select(Business.id).where(Business.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(Business.id != exclude_id)
    if session.execute(stmt).first() is not None:
        raise ConflictError(f"Slug '{slug}' is already taken")


def _ensure_category(session: Session, category_id: Optional[uuid.UUID]) -> None:
    if category_id is not None and session.get(Category, category_id) is None:
        raise NotFoundError("Category not found")


def _column_values(fields: dict[str, Any]) -> dict[str, Any]:
    values = dict(fields)
    for key in ("services", "tags"):
        if key in values and values[key] is None:
            values[key] = []
    return values


def create_business(session: Session, owner: User, payload: BusinessCreate) -> dict:
    """Register a listing for ``owner``. New listings wait in PENDING for review."""
    slug = payload.slug or generate_slug(payload.name)
    if not slug:
        raise InvalidRequestError("Business name must contain letters or digits")
    _ensure_slug_free(session, slug)
    _ensure_category(session, payload.category_id)

    values = _column_values(payload.model_dump(exclude={"slug"}))
    business = Business(**values, slug=slug, owner_id=owner.id, status="PENDING", plan_type="FREE_TRIAL")
    if owner.role == "VISITOR":
        owner.role = "BUSINESS_OWNER"
    session.add(business)
    session.flush()
    logger.info("Business %s created by %s (slug=%s)", business.id, owner.id, slug)
    return business_to_dict(business, EMPTY_SUMMARY)


def update_business(session: Session, actor: User, business_id: uuid.UUID, payload: BusinessUpdate) -> dict:
    business = session.get(Business, business_id)
    if business is None:
        raise NotFoundError("Business not found")
    if business.owner_id != actor.id and actor.role not in ADMIN_ROLES:
        raise PermissionDeniedError("Not allowed to edit this business")

    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise InvalidRequestError("No fields to update")
    if changes.get("name") is None and "name" in changes:
        raise InvalidRequestError("Business name cannot be empty")
    if "slug" in changes:
        if not changes["slug"]:
            raise InvalidRequestError("Slug cannot be empty")
        _ensure_slug_free(session, changes["slug"], exclude_id=business.id)
    if "category_id" in changes:
        _ensure_category(session, changes["category_id"])

    for key, value in _column_values(changes).items():
        setattr(business, key, value)
    session.flush()
    summary = load_rating_summaries(session, [business.id])[business.id]
    return business_to_dict(business, summary)


def list_owner_businesses(session: Session, owner_id: uuid.UUID) -> list[dict]:
    rows = session.execute(
        select(Business)
        .where(Business.owner_id == owner_id)
        .options(selectinload(Business.category))
        .order_by(Business.created_at.desc(), Business.id)
    ).scalars().all()
    ids = [row.id for row in rows]
    summaries = load_rating_summaries(session, ids)
    lead_counts: dict[uuid.UUID, int] = {}
    if ids:
        lead_counts = {
            business_id: int(count)
            for business_id, count in session.execute(
                select(Lead.business_id, func.count(Lead.id))
                .where(Lead.business_id.in_(ids))
                .group_by(Lead.business_id)
            ).all()
        }

    items = []
    for business in rows:
        item = business_to_dict(business, summaries[business.id])
        item["category"] = category_summary(business.category)
        item["leadCount"] = lead_counts.get(business.id, 0)
        items.append(item)
    return items
