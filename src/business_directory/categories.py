from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from .models import Business, Category
from .serializers import category_to_dict


def active_business_counts(session: Session, category_ids: Optional[list[uuid.UUID]] = None) -> dict[uuid.UUID, int]:
    stmt = (
        select(Business.category_id, func.count(Business.id))
        .where(Business.status == "ACTIVE")
        .where(Business.category_id.isnot(None))
        .group_by(Business.category_id)
    )
    if category_ids is not None:
        stmt = stmt.where(Business.category_id.in_(category_ids))
    return {category_id: int(count) for category_id, count in session.execute(stmt).all()}


def list_categories(
    session: Session,
    parent_id: Optional[uuid.UUID] = None,
    roots_only: bool = False,
    include_children: bool = False,
    include_count: bool = True,
) -> list[dict]:
    """Categories by explicit sort order, then name.

    ``businessCount`` counts ACTIVE businesses only.
    """
    stmt = select(Category).order_by(Category.sort_order, Category.name)
    if parent_id is not None:
        stmt = stmt.where(Category.parent_id == parent_id)
    elif roots_only:
        stmt = stmt.where(Category.parent_id.is_(None))
    if include_children:
        stmt = stmt.options(selectinload(Category.children))

    categories = session.execute(stmt).scalars().all()
    counts = active_business_counts(session) if include_count else {}

    def _render(category: Category) -> dict:
        return category_to_dict(category, counts.get(category.id, 0) if include_count else None)

    items = []
    for category in categories:
        item = _render(category)
        if include_children:
            children = sorted(category.children, key=lambda child: (child.sort_order, child.name))
            item["children"] = [_render(child) for child in children]
        items.append(item)
    return items


def get_category_by_slug(session: Session, slug: str) -> Optional[dict]:
    category = session.execute(select(Category).where(Category.slug == slug)).scalar_one_or_none()
    if category is None:
        return None
    count = active_business_counts(session, [category.id]).get(category.id, 0)
    return category_to_dict(category, count)
