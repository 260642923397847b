"""Print row counts per table and listing counts by status and plan."""
from __future__ import annotations
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from sqlalchemy import select, func
from business_directory.config import load_config
from business_directory.db import Database
from business_directory.models import AbuseReport, AdminActionLog, Business, Category, Lead, Review, User

database = Database.from_config(load_config())

with database.session_scope() as session:
    print("=== Table counts ===")
    for model in (User, Category, Business, Review, Lead, AbuseReport, AdminActionLog):
        count = session.execute(select(func.count(model.id))).scalar()
        print(f"  {model.__tablename__}: {count}")

    print("\n=== Businesses by status ===")
    for status, count in session.execute(
        select(Business.status, func.count(Business.id)).group_by(Business.status).order_by(Business.status)
    ).all():
        print(f"  {status}: {count}")

    print("\n=== Businesses by plan ===")
    for plan, count in session.execute(
        select(Business.plan_type, func.count(Business.id)).group_by(Business.plan_type).order_by(Business.plan_type)
    ).all():
        print(f"  {plan}: {count}")

    print("\n=== Leads by status ===")
    for status, count in session.execute(
        select(Lead.status, func.count(Lead.id)).group_by(Lead.status).order_by(Lead.status)
    ).all():
        print(f"  {status}: {count}")

database.dispose()
