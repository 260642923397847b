from __future__ import annotations

import uuid
from datetime import date

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

import business_directory.dashboard as dashboard_module
from business_directory.analytics import get_analytics_summary, get_business_stats, get_platform_stats
from business_directory.dashboard import build_dashboard, dashboard_variant, empty_stats
from business_directory.errors import PermissionDeniedError
from business_directory.moderation import AbuseReportCreate, report_abuse
from business_directory.users import (
    get_user_analytics,
    get_user_by_email,
    get_user_details,
    get_users_by_role,
    search_users,
)
from conftest import make_business, make_category, make_lead, make_review, make_user


def test_search_users_filters_and_counts(db_session: Session, owner, visitor, admin):
    business = make_business(db_session, owner, "Bella Vista")
    make_review(db_session, business, visitor, 5)

    owners = search_users(db_session, has_businesses=True)
    assert [user["email"] for user in owners] == [owner.email]
    assert owners[0]["counts"] == {"businesses": 1, "reviews": 0, "abuseReports": 0}

    reviewers = search_users(db_session, has_reviews=True)
    assert [user["email"] for user in reviewers] == [visitor.email]

    non_owners = {user["email"] for user in search_users(db_session, has_businesses=False)}
    assert non_owners == {visitor.email, admin.email}

    assert [user["role"] for user in search_users(db_session, role="ADMIN")] == ["ADMIN"]
    assert [user["email"] for user in search_users(db_session, email="VISITOR@")] == [visitor.email]
    assert [user["name"] for user in search_users(db_session, name="maria")] == ["Maria Rossi"]


def test_user_details_sections(db_session: Session, owner, visitor, admin):
    business = make_business(db_session, owner, "Bella Vista")
    make_review(db_session, business, visitor, 4)
    make_lead(db_session, business)
    report_abuse(db_session, AbuseReportCreate(type="SPAM", reason="Spam", business_id=business.id), reporter=visitor)

    owner_details = get_user_details(db_session, owner.id)
    assert owner_details["counts"]["businesses"] == 1
    assert owner_details["counts"]["adminActions"] == 0
    assert owner_details["businesses"][0]["counts"] == {"reviews": 1, "leads": 1}

    visitor_details = get_user_details(db_session, visitor.id, include_businesses=False)
    assert "businesses" not in visitor_details
    assert visitor_details["reviews"][0]["business"] == {"name": "Bella Vista", "slug": "bella-vista"}
    assert visitor_details["abuseReports"][0]["type"] == "SPAM"
    assert visitor_details["counts"]["abuseReports"] == 1

    trimmed = get_user_details(db_session, admin.id, include_businesses=False, include_reviews=False, include_activity=False)
    assert set(trimmed) >= {"id", "email", "role", "counts"}
    assert "reviews" not in trimmed and "adminActions" not in trimmed


def test_user_lookup_misses_return_none(db_session: Session):
    assert get_user_details(db_session, uuid.uuid4()) is None
    assert get_user_analytics(db_session, uuid.uuid4()) is None
    assert get_user_by_email(db_session, "nobody@example.com") is None


def test_user_by_email_is_case_insensitive(db_session: Session, owner):
    make_business(db_session, owner, "Bella Vista")

    found = get_user_by_email(db_session, "  OWNER@Directory.TEST ")
    assert found["id"] == str(owner.id)
    assert [item["name"] for item in found["businesses"]] == ["Bella Vista"]
    assert "counts" not in found["businesses"][0]

    without = get_user_by_email(db_session, owner.email, include_businesses=False)
    assert "businesses" not in without


def test_user_analytics_with_date_window(db_session: Session, owner, visitor):
    early = make_business(db_session, owner, "Early", age_days=60)
    late = make_business(db_session, owner, "Late", age_days=1)
    make_lead(db_session, early, age_days=60)
    make_lead(db_session, late, age_days=1)
    make_review(db_session, late, visitor, 4, age_days=1)

    everything = get_user_analytics(db_session, owner.id)
    assert everything["metrics"] == {"businessCount": 2, "reviewCount": 0, "avgRating": 0, "leadCount": 2}
    assert [item["name"] for item in everything["recentActivity"]["businesses"]] == ["Late", "Early"]

    windowed = get_user_analytics(db_session, owner.id, date_from=date(2025, 12, 15), date_to=date(2026, 1, 1))
    assert windowed["metrics"]["businessCount"] == 1
    assert windowed["metrics"]["leadCount"] == 1

    # A single bound is ignored.
    half = get_user_analytics(db_session, owner.id, date_from=date(2025, 12, 15))
    assert half["metrics"]["businessCount"] == 2

    reviewer = get_user_analytics(db_session, visitor.id)
    assert reviewer["metrics"]["reviewCount"] == 1
    assert reviewer["metrics"]["avgRating"] == 4
    assert reviewer["recentActivity"]["reviews"][0]["business"] == {"name": "Late"}


def test_users_by_role_pagination(db_session: Session):
    for i in range(3):
        make_user(db_session, f"owner{i}@example.com", role="BUSINESS_OWNER")
    make_user(db_session, "someone@example.com")

    page = get_users_by_role(db_session, "BUSINESS_OWNER", limit=2, offset=0)
    assert len(page["users"]) == 2
    assert page["pagination"] == {"total": 3, "limit": 2, "offset": 0, "hasMore": True}
    assert "counts" in page["users"][0]

    rest = get_users_by_role(db_session, "BUSINESS_OWNER", include_stats=False, limit=2, offset=2)
    assert len(rest["users"]) == 1
    assert rest["pagination"]["hasMore"] is False
    assert "counts" not in rest["users"][0]


def test_analytics_summary(db_session: Session, owner, visitor):
    make_business(db_session, owner, "Vip One", plan_type="VIP")
    make_business(db_session, owner, "Pro Pending", plan_type="PRO", status="PENDING")
    basic = make_business(db_session, owner, "Basic Old", plan_type="BASIC", age_days=90)
    make_review(db_session, basic, visitor, 3, age_days=90)
    make_lead(db_session, basic, age_days=90)

    summary = get_analytics_summary(db_session)
    assert summary["summary"]["totalBusinesses"] == 3
    assert summary["summary"]["activeBusinesses"] == 2
    assert summary["summary"]["totalReviews"] == 1
    assert summary["summary"]["totalLeads"] == 1
    assert summary["businessesByPlan"] == [
        {"planType": "FREE_TRIAL", "count": 0},
        {"planType": "BASIC", "count": 1},
        {"planType": "PRO", "count": 1},
        {"planType": "VIP", "count": 1},
    ]

    recent = get_analytics_summary(db_session, date(2025, 12, 25), date(2026, 1, 1))
    assert recent["summary"]["totalBusinesses"] == 2
    assert recent["summary"]["totalReviews"] == 0
    assert recent["summary"]["totalLeads"] == 0


def test_platform_stats_count_visible_reviews(db_session: Session, owner, visitor, restaurants):
    business = make_business(db_session, owner, "Bella Vista", category=restaurants)
    make_business(db_session, owner, "Pending", status="PENDING")
    make_review(db_session, business, visitor, 5)
    make_review(db_session, business, make_user(db_session, "troll@example.com"), 1, is_hidden=True)

    assert get_platform_stats(db_session) == {
        "totalBusinesses": 2,
        "activeBusinesses": 1,
        "categories": 1,
        "reviews": 1,
    }


def test_business_stats_for_owner(db_session: Session, owner, visitor, admin):
    business = make_business(db_session, owner, "Bella Vista")
    make_review(db_session, business, visitor, 5)
    make_review(db_session, business, make_user(db_session, "g2@example.com"), 4)
    for status in ("NEW", "CONVERTED", "CONVERTED"):
        make_lead(db_session, business, status=status)

    stats = get_business_stats(db_session, owner, business.id)

    assert stats["rating"] == 4.5
    assert stats["reviewCount"] == 2
    assert stats["ratingDistribution"]["5"] == 1
    assert stats["leads"]["total"] == 3
    assert stats["leads"]["new"] == 1
    assert stats["leads"]["converted"] == 2
    assert stats["leads"]["closedLost"] == 0
    assert stats["leads"]["conversionRate"] == 66.7

    assert get_business_stats(db_session, admin, business.id)["name"] == "Bella Vista"
    with pytest.raises(PermissionDeniedError):
        get_business_stats(db_session, visitor, business.id)


@pytest.mark.parametrize(
    ("role", "variant"),
    [
        ("ADMIN", "admin"),
        ("MODERATOR", "admin"),
        ("SUPPORT", "admin"),
        ("FINANCE", "finance"),
        ("BUSINESS_OWNER", "owner"),
        ("VISITOR", "visitor"),
        ("SOMETHING_NEW", "visitor"),
    ],
)
def test_dashboard_variant_for_role(role, variant):
    assert dashboard_variant(role) == variant


def test_admin_dashboard(db_session: Session, admin, owner, visitor):
    business = make_business(db_session, owner, "Waiting", status="PENDING")
    live = make_business(db_session, owner, "Live")
    make_review(db_session, live, visitor, 1, is_hidden=True)
    report_abuse(db_session, AbuseReportCreate(type="SPAM", reason="Spam", business_id=business.id))

    dashboard = build_dashboard(db_session, admin)

    assert dashboard["variant"] == "admin"
    assert dashboard["degraded"] is False
    assert dashboard["stats"]["pendingBusinesses"] == 1
    assert dashboard["stats"]["openAbuseReports"] == 1
    assert dashboard["stats"]["hiddenReviews"] == 1
    assert dashboard["stats"]["recentActions"] == []


def test_finance_dashboard(db_session: Session, owner):
    finance = make_user(db_session, "finance@example.com", role="FINANCE")
    make_business(db_session, owner, "Vip", plan_type="VIP")
    make_business(db_session, owner, "Free", plan_type="FREE_TRIAL")
    make_business(db_session, owner, "Pro Pending", plan_type="PRO", status="PENDING")

    stats = build_dashboard(db_session, finance)["stats"]

    assert stats["businessesByPlan"] == {"FREE_TRIAL": 1, "BASIC": 0, "PRO": 0, "VIP": 1}
    assert stats["paidActiveListings"] == 1


def test_owner_dashboard(db_session: Session, owner):
    tech = make_category(db_session, "Technology", "technology")
    business = make_business(db_session, owner, "TechFix", category=tech)
    make_lead(db_session, business, status="NEW")
    make_lead(db_session, business, status="CONTACTED")

    stats = build_dashboard(db_session, owner)["stats"]

    assert stats["totalBusinesses"] == 1
    assert stats["totalLeads"] == 2
    assert stats["newLeads"] == 1
    assert stats["businesses"][0]["category"]["slug"] == "technology"


def test_visitor_dashboard(db_session: Session, owner, visitor):
    business = make_business(db_session, owner, "Bella Vista")
    make_review(db_session, business, visitor, 5)

    stats = build_dashboard(db_session, visitor)["stats"]

    assert stats["reviewCount"] == 1
    assert stats["reviews"][0]["business"]["name"] == "Bella Vista"
    assert "user" not in stats["reviews"][0]


def test_dashboard_degrades_to_zeroed_stats_on_database_error(db_session: Session, monkeypatch, owner):
    def _boom(session, user):
        raise OperationalError("SELECT 1", {}, Exception("connection lost"))

    monkeypatch.setitem(dashboard_module._BUILDERS, "owner", _boom)

    dashboard = build_dashboard(db_session, owner)

    assert dashboard == {"variant": "owner", "stats": empty_stats("owner"), "degraded": True}
