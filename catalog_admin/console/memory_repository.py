from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from catalog_admin.console.repository import TaxonomyRepository
from catalog_admin.console.types import (
    AssetSlot,
    CategoryAssets,
    CategoryFields,
    KeepAsset,
    ReplaceAsset,
    RepositoryResult,
    StagedSubcategory,
    SubcategoryDraft,
    clear_rejection,
)
from catalog_admin.core.logging import get_logger
from catalog_admin.middleware.error_handlers import format_validation_errors
from catalog_admin.schemas.taxonomy import (
    CategoryCreateRequest,
    CategoryItem,
    CategoryUpdateRequest,
    FieldError,
    SubcategoryCreateRequest,
    SubcategoryItem,
    SubcategoryUpdateRequest,
)
from catalog_admin.services.asset_storage import CATEGORY_ASSET_FIELDS
from catalog_admin.services.taxonomy_service import clean_taxonomy_name

logger = get_logger(__name__)


def _current_time() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def _validate(model: type[BaseModel], raw: dict[str, Any]) -> tuple[Any, list[FieldError]]:
    try:
        return model.model_validate(raw), []
    except PydanticValidationError as exc:
        errors = format_validation_errors(exc.errors())
        return None, [FieldError(**err) for err in errors]


def _stored_path(slot: AssetSlot, change: ReplaceAsset) -> str:
    _, folder = CATEGORY_ASSET_FIELDS[slot.file_field]
    return f"/uploads/categories/{folder}/{slot.file_field}-{uuid4().hex}-{change.file.filename}"


class InMemoryTaxonomyRepository(TaxonomyRepository):
    """Process-local repository with the same contract as the REST service."""

    def __init__(self) -> None:
        self._categories: dict[str, CategoryItem] = {}
        self._subcategories: dict[str, SubcategoryItem] = {}

    def _subcategories_of(self, category_id: str) -> list[SubcategoryItem]:
        subs = [sub for sub in self._subcategories.values() if sub.category_id == category_id]
        return sorted(subs, key=lambda sub: (sub.sort_order, sub.created_at))

    def _snapshot(self, category: CategoryItem) -> CategoryItem:
        return category.model_copy(
            update={
                "subcategories": [
                    sub.model_copy() for sub in self._subcategories_of(category.id)
                ]
            }
        )

    async def list_categories(self) -> RepositoryResult[list[CategoryItem]]:
        ordered = sorted(
            self._categories.values(),
            key=lambda category: (category.sort_order, category.created_at),
        )
        return RepositoryResult.ok([self._snapshot(category) for category in ordered])

    async def create_category_with_subcategories(
        self,
        fields: CategoryFields,
        staged: list[StagedSubcategory],
        assets: CategoryAssets,
    ) -> RepositoryResult[CategoryItem]:
        rejected = clear_rejection(assets)
        if rejected is not None:
            return rejected
        raw = fields.model_dump(by_alias=True)
        raw["subcategories"] = [sub.model_dump(by_alias=True) for sub in staged]
        payload, errors = _validate(CategoryCreateRequest, raw)
        if payload is None:
            return RepositoryResult.fail("Validation failed", errors)

        now = _current_time()
        category = CategoryItem(
            id=str(uuid4()),
            title=clean_taxonomy_name(payload.title),
            link=payload.link,
            is_active=payload.is_active,
            sort_order=payload.sort_order,
            created_at=now,
            updated_at=now,
        )
        self._apply_assets(category, assets)
        # Build every row before touching the store so a failure leaves nothing behind.
        subcategories = [
            SubcategoryItem(
                id=str(uuid4()),
                name=clean_taxonomy_name(sub.name),
                category_id=category.id,
                is_active=sub.is_active if sub.is_active is not None else True,
                sort_order=sub.sort_order if sub.sort_order is not None else index,
                created_at=now,
                updated_at=now,
            )
            for index, sub in enumerate(payload.subcategories)
        ]
        self._categories[category.id] = category
        for sub in subcategories:
            self._subcategories[sub.id] = sub
        logger.info(
            "category_created",
            category_id=category.id,
            subcategory_count=len(subcategories),
        )
        return RepositoryResult.ok(
            self._snapshot(category),
            message="Category and subcategories created successfully",
        )

    def _apply_assets(self, category: CategoryItem, assets: CategoryAssets) -> None:
        for slot, change in assets.items():
            if isinstance(change, ReplaceAsset):
                setattr(category, slot.category_attribute, _stored_path(slot, change))
            elif isinstance(change, KeepAsset):
                setattr(category, slot.category_attribute, change.url)

    async def update_category(
        self,
        category_id: str,
        fields: CategoryFields,
        assets: CategoryAssets,
    ) -> RepositoryResult[CategoryItem]:
        category = self._categories.get(category_id)
        if category is None:
            return RepositoryResult.fail("Category not found")

        rejected = clear_rejection(assets)
        if rejected is not None:
            return rejected
        raw = fields.model_dump(by_alias=True)
        if raw.get("link") is None:
            raw.pop("link")
        payload, errors = _validate(CategoryUpdateRequest, raw)
        if payload is None:
            return RepositoryResult.fail("Validation failed", errors)

        updated = category.model_copy()
        for field_name in ("link", "is_active", "sort_order"):
            if field_name in payload.model_fields_set:
                setattr(updated, field_name, getattr(payload, field_name))
        if payload.title is not None:
            updated.title = clean_taxonomy_name(payload.title)
        self._apply_assets(updated, assets)
        updated.updated_at = _current_time()
        self._categories[category_id] = updated
        return RepositoryResult.ok(self._snapshot(updated), message="Category updated successfully")

    async def delete_category(self, category_id: str) -> RepositoryResult[None]:
        if self._categories.pop(category_id, None) is None:
            return RepositoryResult.fail("Category not found")
        orphaned = [sub_id for sub_id, sub in self._subcategories.items() if sub.category_id == category_id]
        for sub_id in orphaned:
            del self._subcategories[sub_id]
        logger.info("category_deleted", category_id=category_id, subcategories_removed=len(orphaned))
        return RepositoryResult.ok(
            message="Category and associated subcategories deleted successfully"
        )

    async def toggle_category_active(self, category_id: str) -> RepositoryResult[CategoryItem]:
        category = self._categories.get(category_id)
        if category is None:
            return RepositoryResult.fail("Category not found")
        category.is_active = not category.is_active
        category.updated_at = _current_time()
        state = "activated" if category.is_active else "deactivated"
        return RepositoryResult.ok(self._snapshot(category), message=f"Category {state} successfully")

    async def create_subcategory(
        self,
        category_id: str,
        fields: SubcategoryDraft,
    ) -> RepositoryResult[SubcategoryItem]:
        if category_id not in self._categories:
            return RepositoryResult.fail("Category not found")
        payload, errors = _validate(SubcategoryCreateRequest, fields.model_dump(by_alias=True))
        if payload is None:
            return RepositoryResult.fail("Validation failed", errors)

        now = _current_time()
        subcategory = SubcategoryItem(
            id=str(uuid4()),
            name=clean_taxonomy_name(payload.name),
            category_id=category_id,
            is_active=payload.is_active,
            sort_order=payload.sort_order,
            created_at=now,
            updated_at=now,
        )
        self._subcategories[subcategory.id] = subcategory
        return RepositoryResult.ok(subcategory.model_copy(), message="Subcategory created successfully")

    async def update_subcategory(
        self,
        subcategory_id: str,
        fields: SubcategoryDraft,
    ) -> RepositoryResult[SubcategoryItem]:
        subcategory = self._subcategories.get(subcategory_id)
        if subcategory is None:
            return RepositoryResult.fail("Subcategory not found")
        payload, errors = _validate(SubcategoryUpdateRequest, fields.model_dump(by_alias=True))
        if payload is None:
            return RepositoryResult.fail("Validation failed", errors)

        if payload.name is not None:
            subcategory.name = clean_taxonomy_name(payload.name)
        if payload.is_active is not None:
            subcategory.is_active = payload.is_active
        if payload.sort_order is not None:
            subcategory.sort_order = payload.sort_order
        subcategory.updated_at = _current_time()
        return RepositoryResult.ok(subcategory.model_copy(), message="Subcategory updated successfully")

    async def delete_subcategory(self, subcategory_id: str) -> RepositoryResult[None]:
        if self._subcategories.pop(subcategory_id, None) is None:
            return RepositoryResult.fail("Subcategory not found")
        return RepositoryResult.ok(message="Subcategory deleted successfully")

    async def toggle_subcategory_active(
        self, subcategory_id: str
    ) -> RepositoryResult[SubcategoryItem]:
        subcategory = self._subcategories.get(subcategory_id)
        if subcategory is None:
            return RepositoryResult.fail("Subcategory not found")
        subcategory.is_active = not subcategory.is_active
        subcategory.updated_at = _current_time()
        state = "activated" if subcategory.is_active else "deactivated"
        return RepositoryResult.ok(subcategory.model_copy(), message=f"Subcategory {state} successfully")
