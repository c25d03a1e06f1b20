from __future__ import annotations

from collections import defaultdict
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from catalog_admin.core.logging import get_logger
from catalog_admin.models.category import Category
from catalog_admin.models.subcategory import Subcategory
from catalog_admin.schemas.taxonomy import (
    CategoryCreateRequest,
    CategoryItem,
    SubcategoryItem,
)

logger = get_logger(__name__)


def clean_taxonomy_name(name: str) -> str:
    return " ".join(name.strip().split())


def _current_time() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def to_subcategory_item(subcategory: Subcategory) -> SubcategoryItem:
    return SubcategoryItem(
        id=str(subcategory.id),
        name=subcategory.name,
        category_id=str(subcategory.category_id),
        is_active=subcategory.is_active,
        sort_order=subcategory.sort_order,
        created_at=subcategory.created_at,
        updated_at=subcategory.updated_at,
    )


def to_category_item(
    category: Category,
    subcategories: list[Subcategory] | None = None,
) -> CategoryItem:
    return CategoryItem(
        id=str(category.id),
        title=category.title,
        link=category.link,
        icon_url=category.icon_url,
        image_url=category.image_url,
        desktop_breadcrumb_url=category.desktop_breadcrumb_url,
        mobile_breadcrumb_url=category.mobile_breadcrumb_url,
        is_active=category.is_active,
        sort_order=category.sort_order,
        created_at=category.created_at,
        updated_at=category.updated_at,
        subcategories=[to_subcategory_item(sub) for sub in subcategories or []],
    )


async def load_taxonomy(
    session: AsyncSession,
    *,
    include_inactive: bool = True,
) -> tuple[list[Category], dict[UUID, list[Subcategory]]]:
    category_stmt = select(Category)
    if not include_inactive:
        category_stmt = category_stmt.where(Category.is_active.is_(True))
    category_stmt = category_stmt.order_by(Category.sort_order.asc(), Category.created_at.asc())
    categories_result = await session.execute(category_stmt)
    categories = categories_result.scalars().all()
    if not categories:
        return [], {}

    category_ids = [category.id for category in categories]
    sub_stmt = select(Subcategory).where(Subcategory.category_id.in_(category_ids))
    if not include_inactive:
        sub_stmt = sub_stmt.where(Subcategory.is_active.is_(True))
    sub_stmt = sub_stmt.order_by(Subcategory.sort_order.asc(), Subcategory.created_at.asc())
    subcategories_result = await session.execute(sub_stmt)

    grouped: dict[UUID, list[Subcategory]] = defaultdict(list)
    for subcategory in subcategories_result.scalars().all():
        grouped[subcategory.category_id].append(subcategory)
    return list(categories), dict(grouped)


async def list_category_items(
    session: AsyncSession,
    *,
    include_inactive: bool = True,
    with_subcategories: bool = True,
) -> list[CategoryItem]:
    categories, grouped = await load_taxonomy(session, include_inactive=include_inactive)
    return [
        to_category_item(category, grouped.get(category.id, []) if with_subcategories else None)
        for category in categories
    ]


async def load_category_item(session: AsyncSession, category: Category) -> CategoryItem:
    result = await session.execute(
        select(Subcategory)
        .where(Subcategory.category_id == category.id)
        .order_by(Subcategory.sort_order.asc(), Subcategory.created_at.asc())
    )
    return to_category_item(category, result.scalars().all())


async def create_category_with_subcategories(
    session: AsyncSession,
    *,
    payload: CategoryCreateRequest,
    asset_urls: dict[str, str],
) -> Category:
    """Persist a category and its initial subcategories in one commit.

    ``asset_urls`` holds the stored upload paths keyed by model attribute and
    wins over any URL sent in the payload.
    """
    now = _current_time()
    category = Category(
        title=clean_taxonomy_name(payload.title),
        link=payload.link,
        icon_url=asset_urls.get("icon_url", payload.icon_url),
        image_url=asset_urls.get("image_url", payload.image_url),
        desktop_breadcrumb_url=asset_urls.get("desktop_breadcrumb_url"),
        mobile_breadcrumb_url=asset_urls.get("mobile_breadcrumb_url"),
        is_active=payload.is_active,
        sort_order=payload.sort_order,
        created_at=now,
        updated_at=now,
    )
    try:
        session.add(category)
        await session.flush()
        for index, staged in enumerate(payload.subcategories):
            session.add(
                Subcategory(
                    category_id=category.id,
                    name=clean_taxonomy_name(staged.name),
                    is_active=staged.is_active if staged.is_active is not None else True,
                    sort_order=staged.sort_order if staged.sort_order is not None else index,
                    created_at=now,
                    updated_at=now,
                )
            )
        await session.commit()
    except Exception:
        await session.rollback()
        logger.exception("category_create_failed", title=payload.title)
        raise

    logger.info(
        "category_created",
        category_id=str(category.id),
        subcategory_count=len(payload.subcategories),
    )
    return category


async def delete_category_cascade(session: AsyncSession, category: Category) -> int:
    try:
        result = await session.execute(
            delete(Subcategory).where(Subcategory.category_id == category.id)
        )
        await session.delete(category)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    removed = result.rowcount or 0
    logger.info("category_deleted", category_id=str(category.id), subcategories_removed=removed)
    return removed
