"""Seed a development database with categories, demo users, listings and reviews."""
from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from sqlalchemy import delete

from business_directory.config import configure_logging, load_config
from business_directory.db import Database
from business_directory.models import AbuseReport, AdminActionLog, Business, Category, Lead, Review, ReviewResponse, User

logger = logging.getLogger("seed_directory")

CATEGORIES = [
    ("Restaurants", "restaurants", "Fine dining, cafes, and local eateries", "🍽️"),
    ("Professional Services", "professional-services", "Legal, accounting, consulting services", "💼"),
    ("Health & Medical", "health-medical", "Doctors, clinics, and wellness centers", "🏥"),
    ("Retail & Shopping", "retail-shopping", "Stores, boutiques, and shopping centers", "🛍️"),
    ("Home & Garden", "home-garden", "Contractors, landscaping, home improvement", "🏠"),
    ("Automotive", "automotive", "Car repair, dealerships, and services", "🚗"),
    ("Beauty & Wellness", "beauty-wellness", "Salons, spas, and wellness centers", "💄"),
    ("Technology", "technology", "IT services, computer repair, software", "💻"),
    ("Education", "education", "Schools, tutoring, training centers", "🎓"),
    ("Entertainment", "entertainment", "Theaters, clubs, event venues", "🎭"),
]

OWNERS = [
    ("owner1@example.com", "Maria Rossi"),
    ("owner2@example.com", "John Smith"),
    ("owner3@example.com", "Hans Mueller"),
]

CUSTOMERS = [
    ("customer1@example.com", "Alice Johnson"),
    ("customer2@example.com", "Bob Wilson"),
    ("customer3@example.com", "Sophie Martin"),
]


def _hours(days: list[str], open_at: str, close_at: str) -> dict:
    return {day: {"open": open_at, "close": close_at, "closed": False} for day in days}


WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday"]

BUSINESSES = [
    {
        "name": "Bella Vista Restaurant",
        "slug": "bella-vista-restaurant",
        "description": "Authentic Italian cuisine with a modern twist. Fresh pasta made daily and the finest "
        "ingredients imported from Italy.",
        "email": "info@bellavista.com",
        "phone": "+33 1 23 45 67 89",
        "website": "https://bellavista-paris.com",
        "address_line1": "15 Rue de la Paix",
        "city": "Paris",
        "postal_code": "75001",
        "country": "France",
        "latitude": 48.8566,
        "longitude": 2.3522,
        "services": ["Fine Dining", "Wine Pairing", "Private Events", "Catering"],
        "tags": ["Italian", "Fine Dining", "Romantic", "Business Lunch"],
        "working_hours": _hours(["tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"], "18:00", "23:00"),
        "plan_type": "VIP",
        "category": "restaurants",
    },
    {
        "name": "TechFix Solutions",
        "slug": "techfix-solutions",
        "description": "Professional computer repair and IT support services for businesses and individuals. "
        "Same-day service available for urgent repairs.",
        "email": "contact@techfixsolutions.co.uk",
        "phone": "+44 20 7123 4567",
        "website": "https://techfixsolutions.co.uk",
        "address_line1": "42 Baker Street",
        "city": "London",
        "postal_code": "W1U 3AA",
        "country": "United Kingdom",
        "latitude": 51.5074,
        "longitude": -0.1278,
        "services": ["Computer Repair", "Data Recovery", "Network Setup", "IT Consulting"],
        "tags": ["Computer Repair", "IT Support", "Emergency Service", "Business"],
        "working_hours": {**_hours(WEEKDAYS, "09:00", "18:00"), **_hours(["saturday"], "10:00", "16:00")},
        "plan_type": "PRO",
        "category": "technology",
    },
    {
        "name": "Green Thumb Gardens",
        "slug": "green-thumb-gardens",
        "description": "Complete landscaping and garden design services. Sustainable practices and local plants.",
        "email": "info@greenthumbgardens.de",
        "phone": "+49 30 12345678",
        "website": "https://greenthumbgardens.de",
        "address_line1": "Unter den Linden 10",
        "city": "Berlin",
        "postal_code": "10117",
        "country": "Germany",
        "latitude": 52.52,
        "longitude": 13.405,
        "services": ["Garden Design", "Landscaping", "Maintenance", "Tree Surgery"],
        "tags": ["Landscaping", "Garden Design", "Sustainable", "Maintenance"],
        "working_hours": _hours(WEEKDAYS, "08:00", "17:00"),
        "plan_type": "BASIC",
        "category": "home-garden",
    },
]

# (business index, customer index, rating, title, content)
REVIEWS = [
    (0, 0, 5, "Exceptional dining experience", "Absolutely wonderful evening at Bella Vista! The pasta was perfectly cooked."),
    (0, 1, 5, "Perfect for special occasions", "Celebrated our anniversary here and it was magical."),
    (1, 0, 5, "Quick and professional service", "My laptop crashed on a Friday and they had it fixed by Monday morning."),
    (1, 2, 4, "Great IT support", "Very knowledgeable team. They set up our office network efficiently."),
    (2, 1, 4, "Beautiful garden transformation", "They completely transformed our backyard. Very pleased with the result."),
]


def _reset(session) -> None:
    for model in (AdminActionLog, AbuseReport, Lead, ReviewResponse, Review, Business, Category, User):
        session.execute(delete(model))


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the business directory with demo data")
    parser.add_argument("--reset", action="store_true", help="Delete existing rows first (development only)")
    parser.add_argument("--create-schema", action="store_true", help="Create tables without running migrations")
    args = parser.parse_args()

    config = load_config()
    configure_logging(config.log_level)
    database = Database.from_config(config)
    if args.create_schema:
        database.create_all()

    now = datetime.now(timezone.utc)
    with database.session_scope() as session:
        if args.reset:
            logger.info("Clearing existing data")
            _reset(session)

        categories = {}
        for order, (name, slug, description, icon) in enumerate(CATEGORIES, start=1):
            categories[slug] = Category(name=name, slug=slug, description=description, icon=icon, sort_order=order)
        session.add_all(categories.values())

        session.add(User(email="admin@directorvalue.com", name="Admin User", role="ADMIN", email_verified_at=now))
        owners = [
            User(email=email, name=name, role="BUSINESS_OWNER", email_verified_at=now) for email, name in OWNERS
        ]
        customers = [User(email=email, name=name, role="VISITOR", email_verified_at=now) for email, name in CUSTOMERS]
        session.add_all(owners + customers)
        session.flush()

        businesses = []
        for owner, listing in zip(owners, BUSINESSES):
            values = dict(listing)
            category = categories[values.pop("category")]
            businesses.append(Business(**values, status="ACTIVE", owner_id=owner.id, category_id=category.id))
        session.add_all(businesses)
        session.flush()

        for business_idx, customer_idx, rating, title, content in REVIEWS:
            session.add(
                Review(
                    business_id=businesses[business_idx].id,
                    user_id=customers[customer_idx].id,
                    rating=rating,
                    title=title,
                    content=content,
                )
            )

    print(
        f"Seeded {len(CATEGORIES)} categories, {len(OWNERS) + len(CUSTOMERS) + 1} users, "
        f"{len(BUSINESSES)} businesses, {len(REVIEWS)} reviews"
    )
    database.dispose()


if __name__ == "__main__":
    main()
