from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .models import AbuseReport, AdminActionLog, Business, Lead, Review, User, UserRole
from .serializers import category_summary, iso, user_to_dict


def date_window(date_from: Optional[date], date_to: Optional[date]) -> Optional[tuple[datetime, datetime]]:
    """Inclusive created_at window; only applied when both bounds are given."""
    if date_from is None or date_to is None:
        return None
    return (
        datetime.combine(date_from, time.min, tzinfo=timezone.utc),
        datetime.combine(date_to, time.max, tzinfo=timezone.utc),
    )


def within_window(column, window: Optional[tuple[datetime, datetime]]) -> list:
    if window is None:
        return []
    return [column >= window[0], column <= window[1]]


def _counts_by(session: Session, column, ids: list[uuid.UUID]) -> dict[uuid.UUID, int]:
    if not ids:
        return {}
    rows = session.execute(
        select(column, func.count()).where(column.in_(ids)).group_by(column)
    ).all()
    return {key: int(count) for key, count in rows}


def user_counts(session: Session, user_ids: list[uuid.UUID], include_admin_actions: bool = False) -> dict[uuid.UUID, dict]:
    businesses = _counts_by(session, Business.owner_id, user_ids)
    reviews = _counts_by(session, Review.user_id, user_ids)
    reports = _counts_by(session, AbuseReport.reporter_id, user_ids)
    actions = _counts_by(session, AdminActionLog.admin_id, user_ids) if include_admin_actions else {}

    result = {}
    for user_id in user_ids:
        counts = {
            "businesses": businesses.get(user_id, 0),
            "reviews": reviews.get(user_id, 0),
            "abuseReports": reports.get(user_id, 0),
        }
        if include_admin_actions:
            counts["adminActions"] = actions.get(user_id, 0)
        result[user_id] = counts
    return result


def _with_counts(session: Session, users: list[User], include_admin_actions: bool = False) -> list[dict]:
    counts = user_counts(session, [user.id for user in users], include_admin_actions)
    return [{**user_to_dict(user), "counts": counts[user.id]} for user in users]


def _owned_businesses(session: Session, owner_id: uuid.UUID, with_counts: bool) -> list[dict]:
    rows = session.execute(
        select(Business).where(Business.owner_id == owner_id).order_by(Business.created_at.desc(), Business.id)
    ).scalars().all()
    review_counts = _counts_by(session, Review.business_id, [row.id for row in rows]) if with_counts else {}
    lead_counts = _counts_by(session, Lead.business_id, [row.id for row in rows]) if with_counts else {}

    items = []
    for business in rows:
        item = {
            "id": str(business.id),
            "name": business.name,
            "slug": business.slug,
            "status": business.status,
            "planType": business.plan_type,
            "createdAt": iso(business.created_at),
            "category": category_summary(business.category),
        }
        if with_counts:
            item["counts"] = {
                "reviews": review_counts.get(business.id, 0),
                "leads": lead_counts.get(business.id, 0),
            }
        items.append(item)
    return items


def search_users(
    session: Session,
    email: Optional[str] = None,
    role: Optional[UserRole] = None,
    name: Optional[str] = None,
    has_businesses: Optional[bool] = None,
    has_reviews: Optional[bool] = None,
    limit: int = 10,
    offset: int = 0,
) -> list[dict]:
    stmt = select(User)
    if email:
        stmt = stmt.where(User.email.icontains(email, autoescape=True))
    if role:
        stmt = stmt.where(User.role == role)
    if name:
        stmt = stmt.where(User.name.icontains(name, autoescape=True))
    if has_businesses is not None:
        owns = User.businesses.any()
        stmt = stmt.where(owns if has_businesses else ~owns)
    if has_reviews is not None:
        wrote = User.reviews.any()
        stmt = stmt.where(wrote if has_reviews else ~wrote)

    users = session.execute(
        stmt.order_by(User.created_at.desc(), User.id).offset(offset).limit(limit)
    ).scalars().all()
    return _with_counts(session, list(users))


def get_user_details(
    session: Session,
    user_id: uuid.UUID,
    include_businesses: bool = True,
    include_reviews: bool = True,
    include_activity: bool = True,
) -> Optional[dict]:
    user = session.get(User, user_id)
    if user is None:
        return None

    payload = _with_counts(session, [user], include_admin_actions=True)[0]
    if include_businesses:
        payload["businesses"] = _owned_businesses(session, user.id, with_counts=True)
    if include_reviews:
        reviews = session.execute(
            select(Review).where(Review.user_id == user.id).order_by(Review.created_at.desc(), Review.id).limit(10)
        ).scalars().all()
        payload["reviews"] = [
            {
                "id": str(review.id),
                "rating": review.rating,
                "title": review.title,
                "content": review.content,
                "isHidden": review.is_hidden,
                "createdAt": iso(review.created_at),
                "business": {"name": review.business.name, "slug": review.business.slug},
                "ownerResponse": (
                    {
                        "id": str(review.owner_response.id),
                        "content": review.owner_response.content,
                        "createdAt": iso(review.owner_response.created_at),
                    }
                    if review.owner_response
                    else None
                ),
            }
            for review in reviews
        ]
    if include_activity:
        reports = session.execute(
            select(AbuseReport)
            .where(AbuseReport.reporter_id == user.id)
            .order_by(AbuseReport.created_at.desc(), AbuseReport.id)
            .limit(5)
        ).scalars().all()
        actions = session.execute(
            select(AdminActionLog)
            .where(AdminActionLog.admin_id == user.id)
            .order_by(AdminActionLog.created_at.desc(), AdminActionLog.id)
            .limit(5)
        ).scalars().all()
        payload["abuseReports"] = [
            {"id": str(r.id), "type": r.type, "status": r.status, "createdAt": iso(r.created_at)} for r in reports
        ]
        payload["adminActions"] = [
            {"id": str(a.id), "action": a.action, "targetType": a.target_type, "createdAt": iso(a.created_at)}
            for a in actions
        ]
    return payload


def get_user_by_email(session: Session, email: str, include_businesses: bool = True) -> Optional[dict]:
    user = session.execute(select(User).where(func.lower(User.email) == email.strip().lower())).scalar_one_or_none()
    if user is None:
        return None
    payload = _with_counts(session, [user])[0]
    if include_businesses:
        payload["businesses"] = _owned_businesses(session, user.id, with_counts=False)
    return payload


def get_user_analytics(
    session: Session,
    user_id: uuid.UUID,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> Optional[dict]:
    user = session.get(User, user_id)
    if user is None:
        return None
    window = date_window(date_from, date_to)

    business_filters = [Business.owner_id == user.id, *within_window(Business.created_at, window)]
    review_filters = [Review.user_id == user.id, *within_window(Review.created_at, window)]

    business_count = session.execute(select(func.count(Business.id)).where(*business_filters)).scalar() or 0
    review_count, avg_rating = session.execute(
        select(func.count(Review.id), func.avg(Review.rating)).where(*review_filters)
    ).one()
    lead_count = session.execute(
        select(func.count(Lead.id))
        .join(Business, Lead.business_id == Business.id)
        .where(Business.owner_id == user.id, *within_window(Lead.created_at, window))
    ).scalar() or 0

    recent_businesses = session.execute(
        select(Business).where(*business_filters).order_by(Business.created_at.desc(), Business.id).limit(3)
    ).scalars().all()
    recent_reviews = session.execute(
        select(Review).where(*review_filters).order_by(Review.created_at.desc(), Review.id).limit(3)
    ).scalars().all()

    return {
        "user": {
            "id": str(user.id),
            "name": user.name,
            "email": user.email,
            "role": user.role,
            "createdAt": iso(user.created_at),
        },
        "metrics": {
            "businessCount": int(business_count),
            "reviewCount": int(review_count or 0),
            "avgRating": float(avg_rating) if avg_rating is not None else 0,
            "leadCount": int(lead_count),
        },
        "recentActivity": {
            "businesses": [
                {"id": str(b.id), "name": b.name, "status": b.status, "createdAt": iso(b.created_at)}
                for b in recent_businesses
            ],
            "reviews": [
                {
                    "id": str(r.id),
                    "rating": r.rating,
                    "title": r.title,
                    "createdAt": iso(r.created_at),
                    "business": {"name": r.business.name},
                }
                for r in recent_reviews
            ],
        },
    }


def get_users_by_role(
    session: Session,
    role: UserRole,
    include_stats: bool = True,
    limit: int = 20,
    offset: int = 0,
) -> dict:
    users = session.execute(
        select(User).where(User.role == role).order_by(User.created_at.desc(), User.id).offset(offset).limit(limit)
    ).scalars().all()
    total = int(session.execute(select(func.count(User.id)).where(User.role == role)).scalar() or 0)

    if include_stats:
        items = _with_counts(session, list(users), include_admin_actions=True)
    else:
        items = [user_to_dict(user) for user in users]
    return {
        "users": items,
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "hasMore": offset + limit < total,
        },
    }
