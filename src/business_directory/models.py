from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal, Optional, get_args

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import CITEXT, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from .db import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")
EmailType = Text().with_variant(CITEXT(), "postgresql")

UserRole = Literal["VISITOR", "BUSINESS_OWNER", "ADMIN", "MODERATOR", "FINANCE", "SUPPORT"]
BusinessStatus = Literal["DRAFT", "PENDING", "ACTIVE", "SUSPENDED", "REJECTED", "DEACTIVATED"]
PlanType = Literal["FREE_TRIAL", "BASIC", "PRO", "VIP"]
LeadStatus = Literal["NEW", "VIEWED", "CONTACTED", "QUALIFIED", "CONVERTED", "CLOSED_LOST"]
LeadPriority = Literal["LOW", "MEDIUM", "HIGH", "URGENT"]
AbuseReportType = Literal["SPAM", "INAPPROPRIATE_CONTENT", "FAKE_REVIEW", "HARASSMENT", "COPYRIGHT", "OTHER"]
AbuseReportStatus = Literal["PENDING", "RESOLVED", "DISMISSED"]

USER_ROLES = get_args(UserRole)
ADMIN_ROLES = frozenset({"ADMIN", "MODERATOR"})
BUSINESS_STATUSES = get_args(BusinessStatus)
PLAN_TYPES = get_args(PlanType)
# FREE_TRIAL < BASIC < PRO < VIP
PLAN_RANK = {plan: rank for rank, plan in enumerate(PLAN_TYPES)}
LEAD_STATUSES = get_args(LeadStatus)
LEAD_PRIORITIES = get_args(LeadPriority)
ABUSE_REPORT_TYPES = get_args(AbuseReportType)
ABUSE_REPORT_STATUSES = get_args(AbuseReportStatus)


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("users_role_idx", "role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[Optional[str]] = mapped_column(Text)
    email: Mapped[str] = mapped_column(EmailType, unique=True, nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False, default="VISITOR")
    email_verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    businesses: Mapped[list[Business]] = relationship("Business", back_populates="owner")
    reviews: Mapped[list[Review]] = relationship("Review", back_populates="user", cascade="all, delete-orphan")
    abuse_reports: Mapped[list[AbuseReport]] = relationship("AbuseReport", back_populates="reporter")
    admin_actions: Mapped[list[AdminActionLog]] = relationship("AdminActionLog", back_populates="admin")


class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (
        Index("categories_parent_sort_idx", "parent_id", "sort_order"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    icon: Mapped[Optional[str]] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("categories.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    parent: Mapped[Optional[Category]] = relationship("Category", remote_side="Category.id", back_populates="children")
    children: Mapped[list[Category]] = relationship("Category", back_populates="parent", order_by="Category.sort_order")
    businesses: Mapped[list[Business]] = relationship("Business", back_populates="category")


class Business(Base):
    __tablename__ = "businesses"
    __table_args__ = (
        Index("businesses_status_plan_idx", "status", "plan_type"),
        Index("businesses_category_idx", "category_id"),
        Index("businesses_owner_idx", "owner_id"),
        Index("businesses_created_at_idx", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    email: Mapped[Optional[str]] = mapped_column(EmailType)
    phone: Mapped[Optional[str]] = mapped_column(Text)
    website: Mapped[Optional[str]] = mapped_column(Text)
    address_line1: Mapped[Optional[str]] = mapped_column(Text)
    address_line2: Mapped[Optional[str]] = mapped_column(Text)
    city: Mapped[Optional[str]] = mapped_column(Text)
    state: Mapped[Optional[str]] = mapped_column(Text)
    postal_code: Mapped[Optional[str]] = mapped_column(Text)
    country: Mapped[Optional[str]] = mapped_column(Text)
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)
    logo: Mapped[Optional[str]] = mapped_column(Text)
    services: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    tags: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    working_hours: Mapped[Optional[dict]] = mapped_column(JSONType)
    plan_type: Mapped[str] = mapped_column(Text, nullable=False, default="FREE_TRIAL")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="DRAFT")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("categories.id", ondelete="SET NULL"))
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    category: Mapped[Optional[Category]] = relationship("Category", back_populates="businesses")
    owner: Mapped[User] = relationship("User", back_populates="businesses")
    reviews: Mapped[list[Review]] = relationship("Review", back_populates="business", cascade="all, delete-orphan")
    leads: Mapped[list[Lead]] = relationship("Lead", back_populates="business", cascade="all, delete-orphan")
    abuse_reports: Mapped[list[AbuseReport]] = relationship("AbuseReport", back_populates="business")


class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="reviews_rating_range_chk"),
        UniqueConstraint("business_id", "user_id", name="reviews_business_user_uidx"),
        Index("reviews_business_hidden_idx", "business_id", "is_hidden"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text)
    content: Mapped[Optional[str]] = mapped_column(Text)
    is_hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    business_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    business: Mapped[Business] = relationship("Business", back_populates="reviews")
    user: Mapped[User] = relationship("User", back_populates="reviews")
    owner_response: Mapped[Optional[ReviewResponse]] = relationship(
        "ReviewResponse", back_populates="review", uselist=False, cascade="all, delete-orphan"
    )


class ReviewResponse(Base):
    __tablename__ = "review_responses"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    review_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("reviews.id", ondelete="CASCADE"), unique=True, nullable=False)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    review: Mapped[Review] = relationship("Review", back_populates="owner_response")


class Lead(Base):
    __tablename__ = "leads"
    __table_args__ = (
        Index("leads_business_status_idx", "business_id", "status"),
        Index("leads_created_at_idx", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(EmailType, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(Text)
    company: Mapped[Optional[str]] = mapped_column(Text)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(Text, nullable=False, default="contact_form")
    budget: Mapped[Optional[str]] = mapped_column(Text)
    timeline: Mapped[Optional[str]] = mapped_column(Text)
    location: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="NEW")
    priority: Mapped[str] = mapped_column(Text, nullable=False, default="MEDIUM")
    viewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    converted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    business_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)

    business: Mapped[Business] = relationship("Business", back_populates="leads")


class AbuseReport(Base):
    __tablename__ = "abuse_reports"
    __table_args__ = (
        Index("abuse_reports_status_idx", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="PENDING")
    reporter_email: Mapped[Optional[str]] = mapped_column(EmailType)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    business_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("businesses.id", ondelete="CASCADE"))
    review_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("reviews.id", ondelete="SET NULL"))
    reporter_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"))

    business: Mapped[Optional[Business]] = relationship("Business", back_populates="abuse_reports")
    reporter: Mapped[Optional[User]] = relationship("User", back_populates="abuse_reports")


class AdminActionLog(Base):
    __tablename__ = "admin_action_logs"
    __table_args__ = (
        Index("admin_action_logs_target_idx", "target_type", "target_id"),
        Index("admin_action_logs_created_at_idx", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    target_type: Mapped[str] = mapped_column(Text, nullable=False)
    target_id: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[Optional[dict]] = mapped_column(JSONType)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    admin_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    admin: Mapped[User] = relationship("User", back_populates="admin_actions")
