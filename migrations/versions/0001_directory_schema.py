"""directory schema

Revision ID: 0001_directory
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_directory"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade():
    op.execute("CREATE EXTENSION IF NOT EXISTS citext")

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.Text()),
        sa.Column("email", postgresql.CITEXT(), nullable=False, unique=True),
        sa.Column("role", sa.Text(), nullable=False, server_default=sa.text("'VISITOR'")),
        sa.Column("email_verified_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index("users_role_idx", "users", ["role"])

    op.create_table(
        "categories",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False, unique=True),
        sa.Column("description", sa.Text()),
        sa.Column("icon", sa.Text()),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("parent_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("categories.id", ondelete="SET NULL")),
        *_timestamps(),
    )
    op.create_index("categories_parent_sort_idx", "categories", ["parent_id", "sort_order"])

    op.create_table(
        "businesses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False, unique=True),
        sa.Column("description", sa.Text()),
        sa.Column("email", postgresql.CITEXT()),
        sa.Column("phone", sa.Text()),
        sa.Column("website", sa.Text()),
        sa.Column("address_line1", sa.Text()),
        sa.Column("address_line2", sa.Text()),
        sa.Column("city", sa.Text()),
        sa.Column("state", sa.Text()),
        sa.Column("postal_code", sa.Text()),
        sa.Column("country", sa.Text()),
        sa.Column("latitude", sa.Float()),
        sa.Column("longitude", sa.Float()),
        sa.Column("logo", sa.Text()),
        sa.Column("services", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("tags", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("working_hours", postgresql.JSONB()),
        sa.Column("plan_type", sa.Text(), nullable=False, server_default=sa.text("'FREE_TRIAL'")),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("category_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("categories.id", ondelete="SET NULL")),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        *_timestamps(),
    )
    op.create_index("businesses_status_plan_idx", "businesses", ["status", "plan_type"])
    op.create_index("businesses_category_idx", "businesses", ["category_id"])
    op.create_index("businesses_owner_idx", "businesses", ["owner_id"])
    op.create_index("businesses_created_at_idx", "businesses", ["created_at"])

    op.create_table(
        "reviews",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("title", sa.Text()),
        sa.Column("content", sa.Text()),
        sa.Column("is_hidden", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="reviews_rating_range_chk"),
    )
    op.create_unique_constraint("reviews_business_user_uidx", "reviews", ["business_id", "user_id"])
    op.create_index("reviews_business_hidden_idx", "reviews", ["business_id", "is_hidden"])

    op.create_table(
        "review_responses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("review_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    op.create_table(
        "leads",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", postgresql.CITEXT(), nullable=False),
        sa.Column("phone", sa.Text()),
        sa.Column("company", sa.Text()),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("source", sa.Text(), nullable=False, server_default=sa.text("'contact_form'")),
        sa.Column("budget", sa.Text()),
        sa.Column("timeline", sa.Text()),
        sa.Column("location", sa.Text()),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'NEW'")),
        sa.Column("priority", sa.Text(), nullable=False, server_default=sa.text("'MEDIUM'")),
        sa.Column("viewed_at", sa.DateTime(timezone=True)),
        sa.Column("responded_at", sa.DateTime(timezone=True)),
        sa.Column("converted_at", sa.DateTime(timezone=True)),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False),
        *_timestamps(),
    )
    op.create_index("leads_business_status_idx", "leads", ["business_id", "status"])
    op.create_index("leads_created_at_idx", "leads", ["created_at"])

    op.create_table(
        "abuse_reports",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("reporter_email", postgresql.CITEXT()),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("businesses.id", ondelete="CASCADE")),
        sa.Column("review_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("reviews.id", ondelete="SET NULL")),
        sa.Column("reporter_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("resolved_at", sa.DateTime(timezone=True)),
    )
    op.create_index("abuse_reports_status_idx", "abuse_reports", ["status"])

    op.create_table(
        "admin_action_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("target_type", sa.Text(), nullable=False),
        sa.Column("target_id", sa.Text(), nullable=False),
        sa.Column("details", postgresql.JSONB()),
        sa.Column("admin_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("admin_action_logs_target_idx", "admin_action_logs", ["target_type", "target_id"])
    op.create_index("admin_action_logs_created_at_idx", "admin_action_logs", ["created_at"])


def downgrade():
    op.drop_index("admin_action_logs_created_at_idx", table_name="admin_action_logs")
    op.drop_index("admin_action_logs_target_idx", table_name="admin_action_logs")
    op.drop_table("admin_action_logs")

    op.drop_index("abuse_reports_status_idx", table_name="abuse_reports")
    op.drop_table("abuse_reports")

    op.drop_index("leads_created_at_idx", table_name="leads")
    op.drop_index("leads_business_status_idx", table_name="leads")
    op.drop_table("leads")

    op.drop_table("review_responses")

    op.drop_index("reviews_business_hidden_idx", table_name="reviews")
    op.drop_constraint("reviews_business_user_uidx", "reviews", type_="unique")
    op.drop_table("reviews")

    op.drop_index("businesses_created_at_idx", table_name="businesses")
    op.drop_index("businesses_owner_idx", table_name="businesses")
    op.drop_index("businesses_category_idx", table_name="businesses")
    op.drop_index("businesses_status_plan_idx", table_name="businesses")
    op.drop_table("businesses")

    op.drop_index("categories_parent_sort_idx", table_name="categories")
    op.drop_table("categories")

    op.drop_index("users_role_idx", table_name="users")
    op.drop_table("users")
