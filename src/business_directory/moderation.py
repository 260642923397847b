"""Admin moderation actions.

Status changes are deliberately permissive: an admin may move a business from
any status to any other. Every action writes an AdminActionLog row in the same
transaction as the change it records. Owner email is never sent from here: a
status change hands back a StatusNotice for the caller to deliver once the
transaction has committed.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from .errors import InvalidRequestError, NotFoundError, PermissionDeniedError
from .models import (
    ADMIN_ROLES,
    AbuseReport,
    AbuseReportType,
    AdminActionLog,
    Business,
    BusinessStatus,
    Review,
    User,
)
from .notifications import StatusNotice
from .ratings import load_rating_summaries
from .serializers import (
    abuse_report_to_dict,
    admin_action_to_dict,
    business_to_dict,
    category_summary,
    review_to_dict,
    user_summary,
)

logger = logging.getLogger(__name__)


class AbuseReportCreate(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    type: AbuseReportType
    reason: str = Field(..., min_length=1, max_length=2000)
    business_id: Optional[uuid.UUID] = None
    review_id: Optional[uuid.UUID] = None
    reporter_email: Optional[str] = Field(None, max_length=254)

    @model_validator(mode="after")
    def _needs_target(self):
        if self.business_id is None and self.review_id is None:
            raise ValueError("businessId or reviewId is required")
        return self


def require_admin(user: User) -> None:
    if user.role not in ADMIN_ROLES:
        raise PermissionDeniedError("Admin access required")


def log_admin_action(
    session: Session,
    admin: User,
    action: str,
    target_type: str,
    target_id: Any,
    details: Optional[dict] = None,
) -> AdminActionLog:
    entry = AdminActionLog(
        admin_id=admin.id,
        action=action,
        target_type=target_type,
        target_id=str(target_id),
        details=details,
    )
    session.add(entry)
    return entry


def change_business_status(
    session: Session,
    admin: User,
    business_id: uuid.UUID,
    status: BusinessStatus,
    reason: Optional[str] = None,
    send_email: bool = True,
) -> tuple[dict, Optional[StatusNotice]]:
    require_admin(admin)
    business = session.execute(
        select(Business)
        .where(Business.id == business_id)
        .options(selectinload(Business.owner), selectinload(Business.category))
    ).scalar_one_or_none()
    if business is None:
        raise NotFoundError("Business not found")

    previous = business.status
    business.status = status
    log_admin_action(
        session,
        admin,
        "BUSINESS_STATUS_CHANGE",
        "BUSINESS",
        business.id,
        {"previousStatus": previous, "newStatus": status, "reason": reason},
    )
    session.flush()
    logger.info("Business %s status %s -> %s by %s", business.id, previous, status, admin.id)

    owner = business.owner
    notice = None
    if send_email and owner.email:
        notice = StatusNotice(
            business_name=business.name,
            owner_name=owner.name or owner.email,
            owner_email=owner.email,
            status=status,
            reason=reason,
            category_name=business.category.name if business.category else None,
        )

    summary = load_rating_summaries(session, [business.id])[business.id]
    payload = business_to_dict(business, summary)
    payload["owner"] = user_summary(owner)
    payload["category"] = category_summary(business.category)
    result = {
        "success": True,
        "business": payload,
        "message": f"Business {status.lower()} successfully",
    }
    return result, notice


def _load_review(session: Session, review_id: uuid.UUID) -> Review:
    review = session.execute(
        select(Review)
        .where(Review.id == review_id)
        .options(
            selectinload(Review.user),
            selectinload(Review.business),
            selectinload(Review.owner_response),
        )
    ).scalar_one_or_none()
    if review is None:
        raise NotFoundError("Review not found")
    return review


def set_review_visibility(
    session: Session,
    admin: User,
    review_id: uuid.UUID,
    is_hidden: bool,
    admin_note: Optional[str] = None,
) -> dict:
    require_admin(admin)
    review = _load_review(session, review_id)
    previous = review.is_hidden
    review.is_hidden = is_hidden
    log_admin_action(
        session,
        admin,
        "REVIEW_HIDE" if is_hidden else "REVIEW_SHOW",
        "REVIEW",
        review.id,
        {
            "previousState": {"isHidden": previous},
            "newState": {"isHidden": is_hidden},
            "adminNote": admin_note,
        },
    )
    session.flush()
    return review_to_dict(review, include_business=True)


def delete_review(session: Session, admin: User, review_id: uuid.UUID) -> dict:
    require_admin(admin)
    review = _load_review(session, review_id)
    snapshot = {
        "businessName": review.business.name,
        "userName": review.user.name or review.user.email,
        "rating": review.rating,
        "content": review.content,
    }
    log_admin_action(session, admin, "REVIEW_DELETE", "REVIEW", review.id, {"deletedReview": snapshot})
    session.delete(review)
    session.flush()
    logger.info("Review %s deleted by %s", review_id, admin.id)
    return {"success": True}


def report_abuse(session: Session, payload: AbuseReportCreate, reporter: Optional[User] = None) -> dict:
    business_id = payload.business_id
    if payload.review_id is not None:
        review = session.get(Review, payload.review_id)
        if review is None:
            raise NotFoundError("Review not found")
        if business_id is None:
            business_id = review.business_id
        elif business_id != review.business_id:
            raise InvalidRequestError("Review does not belong to this business")
    if business_id is not None and session.get(Business, business_id) is None:
        raise NotFoundError("Business not found")

    report = AbuseReport(
        type=payload.type,
        reason=payload.reason,
        status="PENDING",
        business_id=business_id,
        review_id=payload.review_id,
        reporter_id=reporter.id if reporter else None,
        reporter_email=payload.reporter_email or (reporter.email if reporter else None),
    )
    session.add(report)
    session.flush()
    return abuse_report_to_dict(report)


def resolve_abuse_report(session: Session, admin: User, report_id: uuid.UUID, status: str) -> dict:
    require_admin(admin)
    if status not in ("RESOLVED", "DISMISSED"):
        raise InvalidRequestError("Status must be RESOLVED or DISMISSED")
    report = session.get(AbuseReport, report_id)
    if report is None:
        raise NotFoundError("Abuse report not found")

    previous = report.status
    report.status = status
    report.resolved_at = datetime.now(timezone.utc)
    log_admin_action(
        session,
        admin,
        f"ABUSE_REPORT_{status}",
        "ABUSE_REPORT",
        report.id,
        {"previousStatus": previous, "newStatus": status},
    )
    session.flush()
    return abuse_report_to_dict(report)


def list_admin_actions(session: Session, limit: int = 50) -> list[dict]:
    entries = session.execute(
        select(AdminActionLog).order_by(AdminActionLog.created_at.desc(), AdminActionLog.id).limit(limit)
    ).scalars().all()
    return [admin_action_to_dict(entry) for entry in entries]
