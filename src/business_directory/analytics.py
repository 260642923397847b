from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from .errors import NotFoundError, PermissionDeniedError
from .leads import STATUS_KEYS, percent, status_counts
from .models import ADMIN_ROLES, PLAN_TYPES, Business, Category, Lead, Review, User
from .ratings import rating_distribution, summarize_ratings
from .users import date_window, within_window


def get_analytics_summary(session: Session, date_from: Optional[date] = None, date_to: Optional[date] = None) -> dict:
    window = date_window(date_from, date_to)

    business_totals = session.execute(
        select(
            func.count(Business.id),
            func.sum(case((Business.status == "ACTIVE", 1), else_=0)),
        ).where(*within_window(Business.created_at, window))
    ).first()
    total_users = session.execute(select(func.count(User.id)).where(*within_window(User.created_at, window))).scalar()
    total_reviews = session.execute(select(func.count(Review.id)).where(*within_window(Review.created_at, window))).scalar()
    total_leads = session.execute(select(func.count(Lead.id)).where(*within_window(Lead.created_at, window))).scalar()
    plan_rows = session.execute(
        select(Business.plan_type, func.count(Business.id))
        .where(*within_window(Business.created_at, window))
        .group_by(Business.plan_type)
    ).all()

    by_plan = {plan: 0 for plan in PLAN_TYPES}
    for plan, count in plan_rows:
        by_plan[plan] = int(count)

    return {
        "summary": {
            "totalBusinesses": int(business_totals[0] or 0),
            "activeBusinesses": int(business_totals[1] or 0),
            "totalUsers": int(total_users or 0),
            "totalReviews": int(total_reviews or 0),
            "totalLeads": int(total_leads or 0),
        },
        "businessesByPlan": [{"planType": plan, "count": count} for plan, count in by_plan.items()],
    }


def get_platform_stats(session: Session) -> dict:
    business_totals = session.execute(
        select(
            func.count(Business.id),
            func.sum(case((Business.status == "ACTIVE", 1), else_=0)),
        )
    ).first()
    categories = session.execute(select(func.count(Category.id))).scalar()
    reviews = session.execute(select(func.count(Review.id)).where(Review.is_hidden.is_(False))).scalar()
    return {
        "totalBusinesses": int(business_totals[0] or 0),
        "activeBusinesses": int(business_totals[1] or 0),
        "categories": int(categories or 0),
        "reviews": int(reviews or 0),
    }


def get_business_stats(session: Session, actor: User, business_id: uuid.UUID) -> dict:
    business = session.get(Business, business_id)
    if business is None:
        raise NotFoundError("Business not found")
    if business.owner_id != actor.id and actor.role not in ADMIN_ROLES:
        raise PermissionDeniedError("Not allowed to view this business")

    ratings = session.execute(
        select(Review.rating).where(Review.business_id == business.id).where(Review.is_hidden.is_(False))
    ).scalars().all()
    summary = summarize_ratings(ratings)
    counts = status_counts(session, business.id)
    total_leads = sum(counts.values())

    return {
        "businessId": str(business.id),
        "name": business.name,
        "status": business.status,
        "planType": business.plan_type,
        "rating": summary.rating,
        "reviewCount": summary.review_count,
        "ratingDistribution": {str(star): count for star, count in rating_distribution(ratings).items()},
        "leads": {
            "total": total_leads,
            **{STATUS_KEYS[status]: count for status, count in counts.items()},
            "conversionRate": percent(counts["CONVERTED"], total_leads, decimals=1),
        },
    }
