from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

import business_directory.models  # noqa: F401
from business_directory.api import create_app
from business_directory.config import Config
from business_directory.db import Database
from business_directory.models import Business, Category, Lead, Review, User

API_KEY = "test-key"
BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


class RecordingEmailSender:
    """Stands in for EmailSender; keeps every message instead of posting it."""

    def __init__(self, base_url: str = "https://directory.test", fail_with: Optional[Exception] = None):
        self.base_url = base_url
        self.fail_with = fail_with
        self.sent: list[dict] = []

    @property
    def enabled(self) -> bool:
        return True

    def send(self, to: str, subject: str, html: str) -> bool:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"to": to, "subject": subject, "html": html})
        return True


@pytest.fixture(scope="session")
def test_database_url() -> str:
    return os.getenv("BUSINESS_DIRECTORY_TEST_DATABASE_URL", "sqlite://")


@pytest.fixture
def database(test_database_url: str):
    if test_database_url.startswith("sqlite"):
        db = Database.from_url(
            test_database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db = Database.from_url(test_database_url, pool_pre_ping=True)
        with db.engine.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS citext"))
    db.drop_all()
    db.create_all()
    yield db
    db.drop_all()
    db.dispose()


@pytest.fixture
def db_session(database: Database) -> Session:
    session = database.SessionLocal()
    try:
        yield session
        session.commit()
    finally:
        session.close()


@pytest.fixture
def test_config() -> Config:
    return Config(
        database_url="sqlite://",
        db_pool_timeout=30,
        admin_api_key=API_KEY,
        mutation_localhost_bypass=True,
        frontend_origins=("http://localhost:3000",),
        resend_api_key=None,
        email_from="Directory <noreply@directory.test>",
        app_base_url="https://directory.test",
        http_timeout=5,
        rating_sort_mode="page",
        search_default_limit=12,
        search_max_limit=100,
        log_level="INFO",
    )


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def client(database: Database, email_sender: RecordingEmailSender, test_config: Config):
    app = create_app(database=database, email_sender=email_sender, config=test_config)
    with TestClient(app) as test_client:
        yield test_client


def auth_headers(user: Optional[User] = None, api_key: Optional[str] = API_KEY) -> dict:
    headers = {}
    if api_key:
        headers["X-API-Key"] = api_key
    if user is not None:
        headers["X-User-Id"] = str(user.id)
    return headers


def make_user(db: Session, email: str, role: str = "VISITOR", name: Optional[str] = None) -> User:
    row = User(email=email, role=role, name=name or email.split("@")[0].title())
    db.add(row)
    db.flush()
    return row


def make_category(db: Session, name: str, slug: str, sort_order: int = 0, parent: Optional[Category] = None) -> Category:
    row = Category(name=name, slug=slug, sort_order=sort_order, parent_id=parent.id if parent else None)
    db.add(row)
    db.flush()
    return row


def make_business(
    db: Session,
    owner: User,
    name: str,
    status: str = "ACTIVE",
    plan_type: str = "FREE_TRIAL",
    category: Optional[Category] = None,
    age_days: int = 0,
    **fields,
) -> Business:
    row = Business(
        name=name,
        slug=fields.pop("slug", name.lower().replace(" ", "-")),
        status=status,
        plan_type=plan_type,
        owner_id=owner.id,
        category_id=category.id if category else None,
        created_at=BASE_TIME - timedelta(days=age_days),
        **fields,
    )
    db.add(row)
    db.flush()
    return row


def make_review(
    db: Session,
    business: Business,
    user: User,
    rating: int,
    is_hidden: bool = False,
    age_days: int = 0,
    content: str = "Solid work, would recommend.",
) -> Review:
    row = Review(
        business_id=business.id,
        user_id=user.id,
        rating=rating,
        content=content,
        is_hidden=is_hidden,
        created_at=BASE_TIME - timedelta(days=age_days),
    )
    db.add(row)
    db.flush()
    return row


def make_lead(db: Session, business: Business, status: str = "NEW", age_days: int = 0, **fields) -> Lead:
    row = Lead(
        business_id=business.id,
        name=fields.pop("name", "Pat Customer"),
        email=fields.pop("email", "pat@example.com"),
        message=fields.pop("message", "Please call me back about a quote."),
        status=status,
        created_at=BASE_TIME - timedelta(days=age_days),
        **fields,
    )
    db.add(row)
    db.flush()
    return row


@pytest.fixture
def admin(db_session: Session) -> User:
    return make_user(db_session, "admin@directory.test", role="ADMIN", name="Admin User")


@pytest.fixture
def owner(db_session: Session) -> User:
    return make_user(db_session, "owner@directory.test", role="BUSINESS_OWNER", name="Maria Rossi")


@pytest.fixture
def visitor(db_session: Session) -> User:
    return make_user(db_session, "visitor@directory.test", role="VISITOR", name="Alice Johnson")


@pytest.fixture
def restaurants(db_session: Session) -> Category:
    return make_category(db_session, "Restaurants", "restaurants", sort_order=1)
