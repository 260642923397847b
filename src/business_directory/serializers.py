from __future__ import annotations

from datetime import datetime
from typing import Optional

from .models import AbuseReport, AdminActionLog, Business, Category, Lead, Review, ReviewResponse, User
from .ratings import RatingSummary


def iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def category_summary(category: Optional[Category]) -> Optional[dict]:
    if category is None:
        return None
    return {
        "id": str(category.id),
        "name": category.name,
        "slug": category.slug,
    }


def category_to_dict(category: Category, business_count: Optional[int] = None) -> dict:
    payload = {
        "id": str(category.id),
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "icon": category.icon,
        "sortOrder": category.sort_order,
        "parentId": str(category.parent_id) if category.parent_id else None,
    }
    if business_count is not None:
        payload["businessCount"] = business_count
    return payload


def user_summary(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {
        "id": str(user.id),
        "name": user.name,
        "email": user.email,
    }


def user_to_dict(user: User) -> dict:
    return {
        "id": str(user.id),
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "emailVerified": iso(user.email_verified_at),
        "createdAt": iso(user.created_at),
        "updatedAt": iso(user.updated_at),
    }


def business_to_dict(business: Business, summary: Optional[RatingSummary] = None) -> dict:
    payload = {
        "id": str(business.id),
        "name": business.name,
        "slug": business.slug,
        "description": business.description,
        "email": business.email,
        "phone": business.phone,
        "website": business.website,
        "addressLine1": business.address_line1,
        "addressLine2": business.address_line2,
        "city": business.city,
        "state": business.state,
        "postalCode": business.postal_code,
        "country": business.country,
        "latitude": business.latitude,
        "longitude": business.longitude,
        "logo": business.logo,
        "services": list(business.services or []),
        "tags": list(business.tags or []),
        "workingHours": business.working_hours,
        "planType": business.plan_type,
        "status": business.status,
        "categoryId": str(business.category_id) if business.category_id else None,
        "ownerId": str(business.owner_id),
        "createdAt": iso(business.created_at),
        "updatedAt": iso(business.updated_at),
    }
    if summary is not None:
        payload["rating"] = summary.rating
        payload["reviewCount"] = summary.review_count
    return payload


def response_to_dict(response: Optional[ReviewResponse]) -> Optional[dict]:
    if response is None:
        return None
    return {
        "id": str(response.id),
        "content": response.content,
        "createdAt": iso(response.created_at),
    }


def review_to_dict(review: Review, include_business: bool = False, include_user: bool = True) -> dict:
    payload = {
        "id": str(review.id),
        "rating": review.rating,
        "title": review.title,
        "content": review.content,
        "isHidden": review.is_hidden,
        "businessId": str(review.business_id),
        "userId": str(review.user_id),
        "createdAt": iso(review.created_at),
        "ownerResponse": response_to_dict(review.owner_response),
    }
    if include_user:
        payload["user"] = {"id": str(review.user.id), "name": review.user.name} if review.user else None
    if include_business:
        payload["business"] = {"name": review.business.name, "slug": review.business.slug}
    return payload


def lead_to_dict(lead: Lead, include_business: bool = False) -> dict:
    payload = {
        "id": str(lead.id),
        "name": lead.name,
        "email": lead.email,
        "phone": lead.phone,
        "company": lead.company,
        "message": lead.message,
        "source": lead.source,
        "budget": lead.budget,
        "timeline": lead.timeline,
        "location": lead.location,
        "status": lead.status,
        "priority": lead.priority,
        "businessId": str(lead.business_id),
        "viewedAt": iso(lead.viewed_at),
        "respondedAt": iso(lead.responded_at),
        "convertedAt": iso(lead.converted_at),
        "createdAt": iso(lead.created_at),
    }
    if include_business:
        payload["business"] = {"name": lead.business.name, "slug": lead.business.slug}
    return payload


def abuse_report_to_dict(report: AbuseReport) -> dict:
    return {
        "id": str(report.id),
        "type": report.type,
        "reason": report.reason,
        "status": report.status,
        "businessId": str(report.business_id) if report.business_id else None,
        "reviewId": str(report.review_id) if report.review_id else None,
        "reporterEmail": report.reporter_email,
        "createdAt": iso(report.created_at),
        "resolvedAt": iso(report.resolved_at),
    }


def admin_action_to_dict(entry: AdminActionLog) -> dict:
    return {
        "id": str(entry.id),
        "adminId": str(entry.admin_id),
        "action": entry.action,
        "targetType": entry.target_type,
        "targetId": entry.target_id,
        "details": entry.details,
        "createdAt": iso(entry.created_at),
    }
