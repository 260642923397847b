"""Lead capture and the owner-side lead funnel.

Status is a plain six-value field: any status may be written over any other.
Priority is independent of status and is only ever set by a caller.
"""
from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from .errors import NotFoundError
from .models import LEAD_STATUSES, Business, Lead, LeadPriority, LeadStatus, User
from .serializers import iso, lead_to_dict

logger = logging.getLogger(__name__)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# Wire keys for per-status counts.
STATUS_KEYS = {
    "NEW": "new",
    "VIEWED": "viewed",
    "CONTACTED": "contacted",
    "QUALIFIED": "qualified",
    "CONVERTED": "converted",
    "CLOSED_LOST": "closedLost",
}


class LeadCreate(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    business_id: uuid.UUID
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=254, pattern=EMAIL_PATTERN)
    message: str = Field(..., min_length=10, max_length=2000)
    phone: Optional[str] = Field(None, max_length=40)
    company: Optional[str] = Field(None, max_length=200)
    source: str = Field("contact_form", max_length=50)
    budget: Optional[str] = Field(None, max_length=100)
    timeline: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=200)
    priority: LeadPriority = "MEDIUM"


def percent(part: int, whole: int, decimals: int = 0) -> float:
    if whole <= 0:
        return 0
    scale = 10 ** decimals
    value = math.floor(part / whole * 100 * scale + 0.5) / scale
    return int(value) if decimals == 0 else value


def _owned_business(session: Session, owner: User, business_id: uuid.UUID) -> Business:
    business = session.execute(
        select(Business).where(Business.id == business_id).where(Business.owner_id == owner.id)
    ).scalar_one_or_none()
    if business is None:
        raise NotFoundError("Business not found")
    return business


def _owned_lead(session: Session, owner: User, business_id: uuid.UUID, lead_id: uuid.UUID) -> Lead:
    _owned_business(session, owner, business_id)
    lead = session.execute(
        select(Lead).where(Lead.id == lead_id).where(Lead.business_id == business_id)
    ).scalar_one_or_none()
    if lead is None:
        raise NotFoundError("Lead not found")
    return lead


def create_lead(session: Session, payload: LeadCreate) -> dict:
    business = session.execute(
        select(Business).where(Business.id == payload.business_id).where(Business.status == "ACTIVE")
    ).scalar_one_or_none()
    if business is None:
        raise NotFoundError("Business not found or inactive")

    lead = Lead(**payload.model_dump(), status="NEW")
    session.add(lead)
    session.flush()
    logger.info("Lead %s captured for business %s (priority=%s)", lead.id, business.id, lead.priority)
    return {
        "success": True,
        "leadId": str(lead.id),
        "message": "Lead submitted successfully",
        "responseTime": "4 hours" if business.plan_type == "VIP" else "24 hours",
    }


def status_counts(session: Session, business_id: uuid.UUID) -> dict[str, int]:
    rows = session.execute(
        select(Lead.status, func.count(Lead.id)).where(Lead.business_id == business_id).group_by(Lead.status)
    ).all()
    counts = {status: 0 for status in LEAD_STATUSES}
    for status, count in rows:
        counts[status] = int(count)
    return counts


def lead_summary(session: Session, business_id: uuid.UUID) -> dict:
    counts = status_counts(session, business_id)
    total = sum(counts.values())
    recent = session.execute(
        select(Lead).where(Lead.business_id == business_id).order_by(Lead.created_at.desc(), Lead.id).limit(5)
    ).scalars().all()
    return {
        "stats": {
            "total": total,
            "new": counts["NEW"],
            "converted": counts["CONVERTED"],
            "conversionRate": percent(counts["CONVERTED"], total, decimals=1),
        },
        "recentLeads": [
            {
                "id": str(lead.id),
                "name": lead.name,
                "email": lead.email,
                "message": lead.message,
                "status": lead.status,
                "priority": lead.priority,
                "createdAt": iso(lead.created_at),
            }
            for lead in recent
        ],
    }


def owner_leads(session: Session, owner: User, business_id: uuid.UUID) -> dict:
    _owned_business(session, owner, business_id)
    leads = session.execute(
        select(Lead).where(Lead.business_id == business_id).order_by(Lead.created_at.desc(), Lead.id)
    ).scalars().all()
    items = [lead_to_dict(lead) for lead in leads]

    by_status: dict[str, list[dict]] = {key: [] for key in STATUS_KEYS.values()}
    for item in items:
        by_status[STATUS_KEYS[item["status"]]].append(item)

    stats = {key: len(rows) for key, rows in by_status.items()}
    return {
        "leads": items,
        "stats": {
            "total": len(items),
            **stats,
            "conversionRate": percent(stats["converted"], len(items)),
        },
        "leadsByStatus": by_status,
        "recentLeads": items[:5],
    }


def get_owner_lead(session: Session, owner: User, business_id: uuid.UUID, lead_id: uuid.UUID) -> dict:
    """Fetch one lead; opening a NEW lead marks it VIEWED."""
    lead = _owned_lead(session, owner, business_id, lead_id)
    if lead.status == "NEW":
        lead.status = "VIEWED"
        lead.viewed_at = datetime.now(timezone.utc)
        session.flush()
    return lead_to_dict(lead)


def update_lead_status(
    session: Session,
    owner: User,
    business_id: uuid.UUID,
    lead_id: uuid.UUID,
    status: LeadStatus,
) -> dict:
    lead = _owned_lead(session, owner, business_id, lead_id)
    now = datetime.now(timezone.utc)
    if status == "VIEWED" and lead.viewed_at is None:
        lead.viewed_at = now
    elif status == "CONTACTED":
        lead.responded_at = now
    elif status == "CONVERTED":
        lead.converted_at = now
    previous = lead.status
    lead.status = status
    session.flush()
    logger.info("Lead %s status %s -> %s", lead.id, previous, status)
    return {"success": True, "status": status, "lead": lead_to_dict(lead)}


def update_lead_priority(
    session: Session,
    owner: User,
    business_id: uuid.UUID,
    lead_id: uuid.UUID,
    priority: LeadPriority,
) -> dict:
    lead = _owned_lead(session, owner, business_id, lead_id)
    lead.priority = priority
    session.flush()
    return {"success": True, "priority": priority, "lead": lead_to_dict(lead)}


def search_leads(
    session: Session,
    business_id: Optional[uuid.UUID] = None,
    status: Optional[LeadStatus] = None,
    priority: Optional[LeadPriority] = None,
    source: Optional[str] = None,
    limit: int = 10,
    offset: int = 0,
) -> list[dict]:
    stmt = select(Lead).options(selectinload(Lead.business))
    if business_id is not None:
        stmt = stmt.where(Lead.business_id == business_id)
    if status:
        stmt = stmt.where(Lead.status == status)
    if priority:
        stmt = stmt.where(Lead.priority == priority)
    if source:
        stmt = stmt.where(Lead.source == source)
    leads = session.execute(
        stmt.order_by(Lead.created_at.desc(), Lead.id).offset(offset).limit(limit)
    ).scalars().all()
    return [lead_to_dict(lead, include_business=True) for lead in leads]
