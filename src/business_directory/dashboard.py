"""Role-routed dashboard payloads.

Six user roles share four dashboard variants. A persistence failure never
turns into an error page: the variant's zeroed stats come back with
``degraded: true`` so callers can tell an empty dashboard from a failed one.
"""
from __future__ import annotations

import logging
from typing import Callable, Literal

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .businesses import list_owner_businesses
from .models import PLAN_TYPES, AbuseReport, Business, Lead, Review, User
from .moderation import list_admin_actions
from .serializers import review_to_dict

logger = logging.getLogger(__name__)

DashboardVariant = Literal["admin", "finance", "owner", "visitor"]

ROLE_VARIANTS: dict[str, DashboardVariant] = {
    "ADMIN": "admin",
    "MODERATOR": "admin",
    "SUPPORT": "admin",
    "FINANCE": "finance",
    "BUSINESS_OWNER": "owner",
    "VISITOR": "visitor",
}


def dashboard_variant(role: str) -> DashboardVariant:
    return ROLE_VARIANTS.get(role, "visitor")


def empty_stats(variant: DashboardVariant) -> dict:
    if variant == "admin":
        return {"pendingBusinesses": 0, "openAbuseReports": 0, "hiddenReviews": 0, "recentActions": []}
    if variant == "finance":
        return {"businessesByPlan": {plan: 0 for plan in PLAN_TYPES}, "paidActiveListings": 0}
    if variant == "owner":
        return {"businesses": [], "totalBusinesses": 0, "totalLeads": 0, "newLeads": 0}
    return {"reviews": [], "reviewCount": 0}


def _count(session: Session, stmt) -> int:
    return int(session.execute(stmt).scalar() or 0)


def _admin_stats(session: Session, user: User) -> dict:
    return {
        "pendingBusinesses": _count(session, select(func.count(Business.id)).where(Business.status == "PENDING")),
        "openAbuseReports": _count(session, select(func.count(AbuseReport.id)).where(AbuseReport.status == "PENDING")),
        "hiddenReviews": _count(session, select(func.count(Review.id)).where(Review.is_hidden.is_(True))),
        "recentActions": list_admin_actions(session, limit=10),
    }


def _finance_stats(session: Session, user: User) -> dict:
    by_plan = {plan: 0 for plan in PLAN_TYPES}
    for plan, count in session.execute(
        select(Business.plan_type, func.count(Business.id))
        .where(Business.status == "ACTIVE")
        .group_by(Business.plan_type)
    ).all():
        by_plan[plan] = int(count)
    return {
        "businessesByPlan": by_plan,
        "paidActiveListings": sum(count for plan, count in by_plan.items() if plan != "FREE_TRIAL"),
    }


def _owner_stats(session: Session, user: User) -> dict:
    businesses = list_owner_businesses(session, user.id)
    new_leads = _count(
        session,
        select(func.count(Lead.id))
        .join(Business, Lead.business_id == Business.id)
        .where(Business.owner_id == user.id)
        .where(Lead.status == "NEW"),
    )
    return {
        "businesses": businesses,
        "totalBusinesses": len(businesses),
        "totalLeads": sum(item["leadCount"] for item in businesses),
        "newLeads": new_leads,
    }


def _visitor_stats(session: Session, user: User) -> dict:
    reviews = session.execute(
        select(Review)
        .where(Review.user_id == user.id)
        .options(selectinload(Review.business), selectinload(Review.owner_response))
        .order_by(Review.created_at.desc(), Review.id)
    ).scalars().all()
    return {
        "reviews": [review_to_dict(review, include_business=True, include_user=False) for review in reviews],
        "reviewCount": len(reviews),
    }


_BUILDERS: dict[DashboardVariant, Callable[[Session, User], dict]] = {
    "admin": _admin_stats,
    "finance": _finance_stats,
    "owner": _owner_stats,
    "visitor": _visitor_stats,
}


def build_dashboard(session: Session, user: User) -> dict:
    variant = dashboard_variant(user.role)
    try:
        stats = _BUILDERS[variant](session, user)
    except SQLAlchemyError:
        logger.exception("Dashboard stats for user %s (%s) failed; serving zeroed stats", user.id, variant)
        session.rollback()
        return {"variant": variant, "stats": empty_stats(variant), "degraded": True}
    return {"variant": variant, "stats": stats, "degraded": False}
