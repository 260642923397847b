from __future__ import annotations

from sqlalchemy.orm import Session

from business_directory.search import (
    SearchParams,
    get_business_by_slug,
    get_business_details,
    get_businesses_by_category,
    get_featured_businesses,
    search_businesses,
)
from conftest import make_business, make_category, make_lead, make_review, make_user


def _names(result: dict) -> list[str]:
    return [item["name"] for item in result["businesses"]]


def test_public_search_only_returns_active_businesses(db_session: Session, owner):
    make_business(db_session, owner, "Active Plumbing", status="ACTIVE")
    for status in ("DRAFT", "PENDING", "SUSPENDED", "REJECTED", "DEACTIVATED"):
        make_business(db_session, owner, f"{status.title()} Plumbing", status=status)

    result = search_businesses(db_session, SearchParams(query="plumbing"))

    assert _names(result) == ["Active Plumbing"]
    assert result["total"] == 1


def test_any_status_when_status_filter_is_cleared(db_session: Session, owner):
    make_business(db_session, owner, "Live Bakery", status="ACTIVE")
    make_business(db_session, owner, "Waiting Bakery", status="PENDING")

    result = search_businesses(db_session, SearchParams(query="bakery", status=None))
    assert sorted(_names(result)) == ["Live Bakery", "Waiting Bakery"]

    pending = search_businesses(db_session, SearchParams(query="bakery", status="PENDING"))
    assert _names(pending) == ["Waiting Bakery"]


def test_filters_combine_with_and(db_session: Session, owner, restaurants):
    tech = make_category(db_session, "Technology", "technology", sort_order=2)
    make_business(db_session, owner, "Paris Bistro", category=restaurants, city="Paris", country="France")
    make_business(db_session, owner, "Paris Repairs", category=tech, city="Paris", country="France")
    make_business(db_session, owner, "Lyon Bistro", category=restaurants, city="Lyon", country="France")

    result = search_businesses(db_session, SearchParams(category_slug="restaurants", city="paris"))
    assert _names(result) == ["Paris Bistro"]

    result = search_businesses(db_session, SearchParams(category_slug="restaurants", country="FRANCE"))
    assert sorted(_names(result)) == ["Lyon Bistro", "Paris Bistro"]


def test_query_matches_name_description_services_and_tags(db_session: Session, owner):
    make_business(db_session, owner, "Alpha", description="Emergency locksmith around the clock")
    make_business(db_session, owner, "Beta", services=["Locksmith", "Key cutting"])
    make_business(db_session, owner, "Gamma", tags=["locksmith"])
    make_business(db_session, owner, "Delta", description="Florist")

    result = search_businesses(db_session, SearchParams(query="LOCKSMITH"))
    assert sorted(_names(result)) == ["Alpha", "Beta", "Gamma"]


def test_location_matches_city_state_or_country(db_session: Session, owner):
    make_business(db_session, owner, "City Match", city="Berlin")
    make_business(db_session, owner, "State Match", state="Berlin Brandenburg")
    make_business(db_session, owner, "Country Match", country="Germany")
    make_business(db_session, owner, "No Match", city="Paris", country="France")

    result = search_businesses(db_session, SearchParams(location="berlin"))
    assert sorted(_names(result)) == ["City Match", "State Match"]


def test_wildcards_in_query_are_literal(db_session: Session, owner):
    make_business(db_session, owner, "100% Organic")
    make_business(db_session, owner, "Plain Grocer")

    result = search_businesses(db_session, SearchParams(query="100%"))
    assert _names(result) == ["100% Organic"]


def test_relevance_orders_by_plan_tier_then_newest(db_session: Session, owner):
    make_business(db_session, owner, "Old Free", plan_type="FREE_TRIAL", age_days=30)
    make_business(db_session, owner, "New Free", plan_type="FREE_TRIAL", age_days=1)
    make_business(db_session, owner, "Basic", plan_type="BASIC", age_days=10)
    make_business(db_session, owner, "Vip", plan_type="VIP", age_days=40)
    make_business(db_session, owner, "Pro", plan_type="PRO", age_days=5)

    result = search_businesses(db_session, SearchParams())
    assert _names(result) == ["Vip", "Pro", "Basic", "New Free", "Old Free"]


def test_newest_sort_ignores_plan(db_session: Session, owner):
    make_business(db_session, owner, "Vip", plan_type="VIP", age_days=40)
    make_business(db_session, owner, "Fresh", plan_type="FREE_TRIAL", age_days=0)

    result = search_businesses(db_session, SearchParams(sort_by="newest"))
    assert _names(result) == ["Fresh", "Vip"]


def test_rating_excludes_hidden_reviews(db_session: Session, owner):
    business = make_business(db_session, owner, "Bella Vista")
    reviewers = [make_user(db_session, f"r{i}@example.com") for i in range(4)]
    make_review(db_session, business, reviewers[0], 5)
    make_review(db_session, business, reviewers[1], 4)
    make_review(db_session, business, reviewers[2], 5)
    make_review(db_session, business, reviewers[3], 1, is_hidden=True)

    item = search_businesses(db_session, SearchParams())["businesses"][0]
    assert item["rating"] == 4.7
    assert item["reviewCount"] == 3


def test_business_without_reviews_has_zero_rating(db_session: Session, owner):
    make_business(db_session, owner, "Quiet Shop")

    item = search_businesses(db_session, SearchParams())["businesses"][0]
    assert item["rating"] == 0
    assert item["reviewCount"] == 0


def _rating_fixture(db_session: Session, owner):
    """Three listings; the best rated one is last under tier/recency order."""
    reviewers = [make_user(db_session, f"rater{i}@example.com") for i in range(3)]
    top_tier = make_business(db_session, owner, "Top Tier", plan_type="VIP", age_days=1)
    middle = make_business(db_session, owner, "Middle", plan_type="PRO", age_days=2)
    best = make_business(db_session, owner, "Best Rated", plan_type="FREE_TRIAL", age_days=3)
    make_review(db_session, top_tier, reviewers[0], 2)
    make_review(db_session, middle, reviewers[0], 3)
    for reviewer in reviewers:
        make_review(db_session, best, reviewer, 5)


def test_page_mode_rating_sort_only_reorders_the_fetched_page(db_session: Session, owner):
    _rating_fixture(db_session, owner)

    page_one = search_businesses(db_session, SearchParams(sort_by="rating", limit=2, rating_sort="page"))
    assert _names(page_one) == ["Middle", "Top Tier"]

    everything = search_businesses(db_session, SearchParams(sort_by="rating", limit=10, rating_sort="page"))
    assert _names(everything) == ["Best Rated", "Middle", "Top Tier"]


def test_global_mode_rating_sort_orders_before_paging(db_session: Session, owner):
    _rating_fixture(db_session, owner)

    page_one = search_businesses(db_session, SearchParams(sort_by="rating", limit=2, rating_sort="global"))
    assert _names(page_one) == ["Best Rated", "Middle"]

    by_reviews = search_businesses(db_session, SearchParams(sort_by="reviews", limit=1, rating_sort="global"))
    assert _names(by_reviews) == ["Best Rated"]


def test_pagination_metadata(db_session: Session, owner):
    for i in range(5):
        make_business(db_session, owner, f"Shop {i}", age_days=i)

    result = search_businesses(db_session, SearchParams(page=2, limit=2, sort_by="newest"))
    assert _names(result) == ["Shop 2", "Shop 3"]
    assert result["total"] == 5
    assert result["pages"] == 3
    assert result["hasNext"] is True
    assert result["hasPrev"] is True

    by_offset = search_businesses(db_session, SearchParams(offset=4, limit=2, sort_by="newest"))
    assert _names(by_offset) == ["Shop 4"]
    assert by_offset["page"] == 3


def test_businesses_by_category(db_session: Session, owner, restaurants, visitor):
    bistro = make_business(db_session, owner, "Bistro", category=restaurants)
    make_business(db_session, owner, "Hidden Bistro", category=restaurants, status="SUSPENDED")
    others = [make_user(db_session, f"guest{i}@example.com") for i in range(2)]
    make_review(db_session, bistro, visitor, 5)
    make_review(db_session, bistro, others[0], 4)
    make_review(db_session, bistro, others[1], 5)

    result = get_businesses_by_category(db_session, "restaurants")

    assert result["category"]["slug"] == "restaurants"
    assert _names(result) == ["Bistro"]
    assert result["businesses"][0]["rating"] == 4.7
    assert result["businesses"][0]["reviewCount"] == 3
    assert get_businesses_by_category(db_session, "no-such-category") is None


def test_business_by_slug_requires_active_and_hides_hidden_reviews(db_session: Session, owner, restaurants, visitor):
    business = make_business(db_session, owner, "Bella Vista", category=restaurants)
    make_business(db_session, owner, "Pending Place", status="PENDING")
    critic = make_user(db_session, "critic@example.com")
    make_review(db_session, business, visitor, 5, age_days=2)
    make_review(db_session, business, critic, 1, is_hidden=True, age_days=1)

    payload = get_business_by_slug(db_session, "bella-vista")

    assert payload["rating"] == 5
    assert payload["reviewCount"] == 1
    assert [review["rating"] for review in payload["reviews"]] == [5]
    assert payload["ratingDistribution"] == {"1": 0, "2": 0, "3": 0, "4": 0, "5": 1}
    assert payload["owner"]["email"] == owner.email
    assert payload["category"]["name"] == "Restaurants"
    assert get_business_by_slug(db_session, "pending-place") is None


def test_business_details_include_any_status_and_counts(db_session: Session, owner, visitor):
    business = make_business(db_session, owner, "Suspended Spa", status="SUSPENDED")
    make_review(db_session, business, visitor, 3, is_hidden=True)
    make_lead(db_session, business)
    make_lead(db_session, business, email="second@example.com")

    payload = get_business_details(db_session, business.id)

    assert payload["status"] == "SUSPENDED"
    assert payload["owner"]["role"] == "BUSINESS_OWNER"
    assert payload["counts"] == {"reviews": 1, "leads": 2, "abuseReports": 0}
    assert len(payload["reviews"]) == 1
    assert payload["rating"] == 0


def test_featured_businesses_are_active_vip_by_rating(db_session: Session, owner, visitor):
    low = make_business(db_session, owner, "Vip Low", plan_type="VIP", age_days=1)
    high = make_business(db_session, owner, "Vip High", plan_type="VIP", age_days=2)
    make_business(db_session, owner, "Vip Pending", plan_type="VIP", status="PENDING")
    make_business(db_session, owner, "Pro Shop", plan_type="PRO")
    make_review(db_session, low, visitor, 3)
    make_review(db_session, high, visitor, 5)

    featured = get_featured_businesses(db_session, limit=6)
    assert [item["name"] for item in featured] == ["Vip High", "Vip Low"]


def test_category_and_location_scenario(db_session: Session, owner, visitor):
    food = make_category(db_session, "Restaurants & Food", "restaurants-food")
    diner = make_business(db_session, owner, "Austin Diner", category=food, city="Austin", state="Texas")
    make_business(db_session, owner, "Dallas Diner", category=food, city="Dallas", state="Texas")
    make_business(db_session, owner, "Austin Garage", city="Austin")
    reviewers = [visitor, make_user(db_session, "b@example.com"), make_user(db_session, "c@example.com")]
    for reviewer, rating in zip(reviewers, [5, 4, 5]):
        make_review(db_session, diner, reviewer, rating)

    listing = get_businesses_by_category(db_session, "restaurants-food", page=1, limit=12)
    assert listing["total"] == 2

    both = search_businesses(db_session, SearchParams(category_slug="restaurants-food", location="Austin"))
    assert both["total"] == 1
    assert both["businesses"][0]["rating"] == 4.7
    assert both["businesses"][0]["reviewCount"] == 3

    nothing = search_businesses(db_session, SearchParams(category_slug="restaurants-food", location="Houston"))
    assert nothing["total"] == 0
    assert nothing["businesses"] == []


def test_query_matches_array_elements_not_json_punctuation(db_session: Session, owner):
    make_business(db_session, owner, "Alpha Bakery", services=["Bread"])
    make_business(db_session, owner, "Beta Cafe", services=["Café crème"], tags=["Petit-déjeuner"])

    for punctuation in ("[", "]", '"', ",", '", "'):
        assert search_businesses(db_session, SearchParams(query=punctuation))["total"] == 0

    assert _names(search_businesses(db_session, SearchParams(query="café"))) == ["Beta Cafe"]
    assert _names(search_businesses(db_session, SearchParams(query="déjeuner"))) == ["Beta Cafe"]


def test_tags_filter_matches_any_listed_tag(db_session: Session, owner):
    make_business(db_session, owner, "Vegan Place", tags=["Vegan", "Organic"])
    make_business(db_session, owner, "Grill House", tags=["bbq"])
    make_business(db_session, owner, "Plain Diner")

    result = search_businesses(db_session, SearchParams(tags="vegan, BBQ"))
    assert sorted(_names(result)) == ["Grill House", "Vegan Place"]

    assert _names(search_businesses(db_session, SearchParams(tags=["organic"]))) == ["Vegan Place"]
    assert search_businesses(db_session, SearchParams(tags=["veg"]))["total"] == 0
    assert search_businesses(db_session, SearchParams(tags=" , "))["total"] == 3


def test_min_rating_compares_the_displayed_rating(db_session: Session, owner):
    reviewers = [make_user(db_session, f"judge{i}@example.com") for i in range(3)]
    half_up = make_business(db_session, owner, "Half Up")
    for reviewer, rating in zip(reviewers, [4, 5]):
        make_review(db_session, half_up, reviewer, rating)
    four_three = make_business(db_session, owner, "Four Three")
    for reviewer, rating in zip(reviewers, [4, 4, 5]):
        make_review(db_session, four_three, reviewer, rating)
    hidden_five = make_business(db_session, owner, "Hidden Five")
    make_review(db_session, hidden_five, reviewers[0], 2)
    make_review(db_session, hidden_five, reviewers[1], 5, is_hidden=True)
    make_business(db_session, owner, "Unreviewed")

    def names(min_rating: float) -> list[str]:
        return sorted(_names(search_businesses(db_session, SearchParams(min_rating=min_rating))))

    assert names(4.5) == ["Half Up"]
    assert names(4.3) == ["Four Three", "Half Up"]
    assert names(2) == ["Four Three", "Half Up", "Hidden Five"]
    assert names(2.1) == ["Four Three", "Half Up"]
