from __future__ import annotations

import uuid

import pytest
from sqlalchemy.orm import Session

from business_directory.errors import ConflictError, InvalidRequestError, NotFoundError
from business_directory.leads import (
    LeadCreate,
    create_lead,
    get_owner_lead,
    lead_summary,
    owner_leads,
    search_leads,
    update_lead_priority,
    update_lead_status,
)
from business_directory.models import Lead
from business_directory.reviews import create_review, list_business_reviews, respond_to_review, search_reviews
from conftest import make_business, make_lead, make_review, make_user


def test_create_review_on_active_business(db_session: Session, owner, visitor):
    business = make_business(db_session, owner, "Bella Vista")

    review = create_review(db_session, visitor, business.id, 5, "Lovely pasta and service.", title="Great")

    assert review["rating"] == 5
    assert review["isHidden"] is False
    assert review["business"] == {"name": "Bella Vista", "slug": "bella-vista"}
    assert review["user"]["name"] == visitor.name


@pytest.mark.parametrize("rating", [0, 6, 4.5, True, "5"])
def test_create_review_rejects_bad_rating(db_session: Session, owner, visitor, rating):
    business = make_business(db_session, owner, "Bella Vista")
    with pytest.raises(InvalidRequestError):
        create_review(db_session, visitor, business.id, rating, "Fine")


def test_create_review_limits(db_session: Session, owner, visitor):
    business = make_business(db_session, owner, "Bella Vista")
    pending = make_business(db_session, owner, "Pending Place", status="PENDING")

    with pytest.raises(InvalidRequestError):
        create_review(db_session, visitor, business.id, 4, "x" * 1001)
    with pytest.raises(NotFoundError):
        create_review(db_session, visitor, pending.id, 4, "Not open yet")

    create_review(db_session, visitor, business.id, 4, "x" * 1000)
    with pytest.raises(ConflictError):
        create_review(db_session, visitor, business.id, 5, "Second try")


def test_list_business_reviews_hides_hidden_and_paginates(db_session: Session, owner):
    business = make_business(db_session, owner, "Bella Vista")
    for i in range(3):
        make_review(db_session, business, make_user(db_session, f"guest{i}@example.com"), 4, age_days=i)
    make_review(db_session, business, make_user(db_session, "troll@example.com"), 1, is_hidden=True)

    result = list_business_reviews(db_session, business.id, page=1, limit=2)

    assert len(result["reviews"]) == 2
    assert all(review["rating"] == 4 for review in result["reviews"])
    assert result["pagination"] == {"page": 1, "limit": 2, "totalReviews": 3, "totalPages": 2, "hasMore": True}


def test_owner_responds_once(db_session: Session, owner, visitor):
    business = make_business(db_session, owner, "Bella Vista")
    review = make_review(db_session, business, visitor, 3)

    result = respond_to_review(db_session, owner, business.id, review.id, "Thanks, we will improve.")
    assert result["success"] is True
    assert result["response"]["content"] == "Thanks, we will improve."

    with pytest.raises(ConflictError):
        respond_to_review(db_session, owner, business.id, review.id, "Again")


def test_only_owner_can_respond(db_session: Session, owner, visitor):
    business = make_business(db_session, owner, "Bella Vista")
    review = make_review(db_session, business, visitor, 3)
    stranger = make_user(db_session, "stranger@example.com", role="BUSINESS_OWNER")

    with pytest.raises(NotFoundError, match="access denied"):
        respond_to_review(db_session, stranger, business.id, review.id, "Not my place")


def test_search_reviews_filters(db_session: Session, owner, visitor):
    business = make_business(db_session, owner, "Bella Vista")
    other = make_business(db_session, owner, "Other Place")
    make_review(db_session, business, visitor, 5)
    make_review(db_session, other, visitor, 2, is_hidden=True)

    hidden = search_reviews(db_session, is_hidden=True)
    assert [review["business"]["name"] for review in hidden] == ["Other Place"]
    assert len(search_reviews(db_session, user_id=visitor.id)) == 2
    assert search_reviews(db_session, business_id=business.id, rating=2) == []


def _lead_payload(business, **overrides) -> LeadCreate:
    data = {
        "businessId": str(business.id),
        "name": "Pat Customer",
        "email": "pat@example.com",
        "message": "Please send me a quote for the job.",
    }
    data.update(overrides)
    return LeadCreate.model_validate(data)


def test_create_lead_response_time_depends_on_plan(db_session: Session, owner):
    vip = make_business(db_session, owner, "Vip Place", plan_type="VIP")
    basic = make_business(db_session, owner, "Basic Place", plan_type="BASIC")

    vip_result = create_lead(db_session, _lead_payload(vip))
    basic_result = create_lead(db_session, _lead_payload(basic, priority="HIGH"))

    assert vip_result["success"] is True
    assert vip_result["message"] == "Lead submitted successfully"
    assert vip_result["responseTime"] == "4 hours"
    assert basic_result["responseTime"] == "24 hours"

    lead = db_session.get(Lead, uuid.UUID(basic_result["leadId"]))
    assert lead.status == "NEW"
    assert lead.priority == "HIGH"
    assert lead.source == "contact_form"


def test_create_lead_requires_active_business(db_session: Session, owner):
    pending = make_business(db_session, owner, "Pending Place", status="PENDING")
    with pytest.raises(NotFoundError, match="inactive"):
        create_lead(db_session, _lead_payload(pending))


def test_lead_payload_validation(db_session: Session, owner):
    business = make_business(db_session, owner, "Bella Vista")
    with pytest.raises(ValueError):
        _lead_payload(business, message="short")
    with pytest.raises(ValueError):
        _lead_payload(business, email="not-an-email")
    with pytest.raises(ValueError):
        _lead_payload(business, priority="CRITICAL")


def test_lead_summary_stats(db_session: Session, owner):
    business = make_business(db_session, owner, "Bella Vista")
    make_lead(db_session, business, status="NEW", age_days=1)
    make_lead(db_session, business, status="CONVERTED", age_days=2)
    make_lead(db_session, business, status="CONTACTED", age_days=3)

    summary = lead_summary(db_session, business.id)

    assert summary["stats"] == {"total": 3, "new": 1, "converted": 1, "conversionRate": 33.3}
    assert [lead["status"] for lead in summary["recentLeads"]] == ["NEW", "CONVERTED", "CONTACTED"]


def test_owner_leads_groups_by_status(db_session: Session, owner):
    business = make_business(db_session, owner, "Bella Vista")
    for i, status in enumerate(["NEW", "NEW", "VIEWED", "CONVERTED", "CLOSED_LOST", "QUALIFIED"]):
        make_lead(db_session, business, status=status, age_days=i)

    result = owner_leads(db_session, owner, business.id)

    assert result["stats"] == {
        "total": 6,
        "new": 2,
        "viewed": 1,
        "contacted": 0,
        "qualified": 1,
        "converted": 1,
        "closedLost": 1,
        "conversionRate": 17,
    }
    assert len(result["leadsByStatus"]["closedLost"]) == 1
    assert len(result["recentLeads"]) == 5


def test_owner_leads_denied_for_other_owner(db_session: Session, owner):
    business = make_business(db_session, owner, "Bella Vista")
    stranger = make_user(db_session, "stranger@example.com", role="BUSINESS_OWNER")
    with pytest.raises(NotFoundError):
        owner_leads(db_session, stranger, business.id)


def test_opening_a_new_lead_marks_it_viewed(db_session: Session, owner):
    business = make_business(db_session, owner, "Bella Vista")
    lead = make_lead(db_session, business)

    opened = get_owner_lead(db_session, owner, business.id, lead.id)

    assert opened["status"] == "VIEWED"
    assert opened["viewedAt"] is not None


def test_lead_status_updates_stamp_timestamps(db_session: Session, owner):
    business = make_business(db_session, owner, "Bella Vista")
    lead = make_lead(db_session, business)

    contacted = update_lead_status(db_session, owner, business.id, lead.id, "CONTACTED")
    assert contacted["success"] is True
    assert contacted["lead"]["respondedAt"] is not None

    converted = update_lead_status(db_session, owner, business.id, lead.id, "CONVERTED")
    assert converted["lead"]["convertedAt"] is not None

    # Any status may follow any other.
    reopened = update_lead_status(db_session, owner, business.id, lead.id, "NEW")
    assert reopened["status"] == "NEW"

    prioritized = update_lead_priority(db_session, owner, business.id, lead.id, "URGENT")
    assert prioritized["lead"]["priority"] == "URGENT"
    assert prioritized["lead"]["status"] == "NEW"


def test_lead_in_other_business_is_not_found(db_session: Session, owner):
    mine = make_business(db_session, owner, "Mine")
    theirs = make_business(db_session, make_user(db_session, "o2@example.com", role="BUSINESS_OWNER"), "Theirs")
    lead = make_lead(db_session, theirs)

    with pytest.raises(NotFoundError, match="Lead not found"):
        update_lead_status(db_session, owner, mine.id, lead.id, "CONTACTED")


def test_search_leads_filters(db_session: Session, owner):
    business = make_business(db_session, owner, "Bella Vista")
    make_lead(db_session, business, status="NEW", priority="HIGH", source="phone")
    make_lead(db_session, business, status="CONVERTED", priority="LOW")

    results = search_leads(db_session, priority="HIGH")
    assert len(results) == 1
    assert results[0]["source"] == "phone"
    assert results[0]["business"]["name"] == "Bella Vista"
    assert len(search_leads(db_session, business_id=business.id)) == 2
    assert search_leads(db_session, status="QUALIFIED") == []
