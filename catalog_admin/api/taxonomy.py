from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from catalog_admin.core.db import get_session
from catalog_admin.core.logging import get_logger
from catalog_admin.models.category import Category
from catalog_admin.models.subcategory import Subcategory
from catalog_admin.schemas.taxonomy import (
    ApiResponse,
    CategoryCreateRequest,
    CategoryItem,
    CategoryUpdateRequest,
    SubcategoryCreateRequest,
    SubcategoryItem,
    SubcategoryUpdateRequest,
)
from catalog_admin.services.asset_storage import (
    AssetStorage,
    UnsupportedAssetError,
    get_asset_storage,
)
from catalog_admin.services.taxonomy_service import (
    clean_taxonomy_name,
    create_category_with_subcategories,
    delete_category_cascade,
    list_category_items,
    load_category_item,
    to_category_item,
    to_subcategory_item,
)

router = APIRouter(prefix="/api/categories", tags=["categories"])
logger = get_logger(__name__)

ModelT = type[BaseModel]


def _current_time() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def _parse_uuid(value: str, *, field_name: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid {field_name}",
        ) from exc


def _validate_form(model: ModelT, raw: dict[str, Any]) -> Any:
    try:
        return model.model_validate(raw)
    except PydanticValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc


def _parse_staged_subcategories(raw: str | None) -> list[Any]:
    if raw is None or not raw.strip():
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise RequestValidationError(
            [{"loc": ("subcategories",), "msg": "Subcategories must be a JSON array", "type": "json_invalid"}]
        ) from exc
    if not isinstance(parsed, list):
        raise RequestValidationError(
            [{"loc": ("subcategories",), "msg": "Subcategories must be a JSON array", "type": "list_type"}]
        )
    return parsed


async def _store_assets(
    storage: AssetStorage,
    uploads: dict[str, UploadFile | None],
) -> dict[str, str]:
    try:
        return await storage.save_category_assets(uploads)
    except UnsupportedAssetError as exc:
        field_name = str(exc).split(":", 1)[0]
        raise RequestValidationError(
            [{"loc": (field_name,), "msg": "Only image files are allowed", "type": "file_type"}]
        ) from exc


async def _get_category(session: AsyncSession, category_id: str) -> Category:
    category_uuid = _parse_uuid(category_id, field_name="category_id")
    result = await session.execute(select(Category).where(Category.id == category_uuid))
    category = result.scalar_one_or_none()
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return category


async def _get_subcategory(session: AsyncSession, subcategory_id: str) -> Subcategory:
    subcategory_uuid = _parse_uuid(subcategory_id, field_name="subcategory_id")
    result = await session.execute(select(Subcategory).where(Subcategory.id == subcategory_uuid))
    subcategory = result.scalar_one_or_none()
    if not subcategory:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subcategory not found")
    return subcategory


@router.get("", response_model=ApiResponse[list[CategoryItem]], response_model_exclude_none=True)
async def list_active_categories(
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[list[CategoryItem]]:
    items = await list_category_items(session, include_inactive=False, with_subcategories=False)
    return ApiResponse(success=True, data=items, count=len(items))


@router.get(
    "/admin/all",
    response_model=ApiResponse[list[CategoryItem]],
    response_model_exclude_none=True,
)
async def list_all_categories(
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[list[CategoryItem]]:
    items = await list_category_items(session, include_inactive=True)
    return ApiResponse(success=True, data=items, count=len(items))


@router.post(
    "/with-subcategories",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[CategoryItem],
    response_model_exclude_none=True,
)
async def create_category(
    title: str = Form(default=""),
    link: str | None = Form(default=None),
    icon_url: str | None = Form(default=None, alias="iconUrl"),
    image_url: str | None = Form(default=None, alias="imageUrl"),
    is_active: str | None = Form(default=None, alias="isActive"),
    sort_order: str | None = Form(default=None, alias="sortOrder"),
    subcategories: str | None = Form(default=None),
    icon: UploadFile | None = File(default=None),
    image: UploadFile | None = File(default=None),
    desktop_breadcrumb: UploadFile | None = File(default=None, alias="desktopBreadcrumb"),
    mobile_breadcrumb: UploadFile | None = File(default=None, alias="mobileBreadcrumb"),
    session: AsyncSession = Depends(get_session),
    storage: AssetStorage = Depends(get_asset_storage),
) -> ApiResponse[CategoryItem]:
    raw: dict[str, Any] = {
        "title": title,
        "link": link,
        "iconUrl": icon_url,
        "imageUrl": image_url,
        "subcategories": _parse_staged_subcategories(subcategories),
    }
    if is_active is not None:
        raw["isActive"] = is_active
    if sort_order is not None and sort_order.strip():
        raw["sortOrder"] = sort_order
    payload: CategoryCreateRequest = _validate_form(CategoryCreateRequest, raw)

    asset_urls = await _store_assets(
        storage,
        {
            "icon": icon,
            "image": image,
            "desktopBreadcrumb": desktop_breadcrumb,
            "mobileBreadcrumb": mobile_breadcrumb,
        },
    )
    category = await create_category_with_subcategories(
        session, payload=payload, asset_urls=asset_urls
    )
    return ApiResponse(
        success=True,
        message="Category and subcategories created successfully",
        data=await load_category_item(session, category),
    )


@router.get(
    "/subcategories/{subcategory_id}",
    response_model=ApiResponse[SubcategoryItem],
    response_model_exclude_none=True,
)
async def get_subcategory(
    subcategory_id: str,
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[SubcategoryItem]:
    subcategory = await _get_subcategory(session, subcategory_id)
    return ApiResponse(success=True, data=to_subcategory_item(subcategory))


@router.put(
    "/subcategories/{subcategory_id}",
    response_model=ApiResponse[SubcategoryItem],
    response_model_exclude_none=True,
)
async def update_subcategory(
    subcategory_id: str,
    payload: SubcategoryUpdateRequest,
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[SubcategoryItem]:
    subcategory = await _get_subcategory(session, subcategory_id)
    if payload.name is not None:
        subcategory.name = clean_taxonomy_name(payload.name)
    if payload.is_active is not None:
        subcategory.is_active = payload.is_active
    if payload.sort_order is not None:
        subcategory.sort_order = payload.sort_order
    subcategory.updated_at = _current_time()
    session.add(subcategory)
    await session.commit()
    return ApiResponse(
        success=True,
        message="Subcategory updated successfully",
        data=to_subcategory_item(subcategory),
    )


@router.delete(
    "/subcategories/{subcategory_id}",
    response_model=ApiResponse[dict],
    response_model_exclude_none=True,
)
async def delete_subcategory(
    subcategory_id: str,
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[dict]:
    subcategory = await _get_subcategory(session, subcategory_id)
    await session.delete(subcategory)
    await session.commit()
    logger.info("subcategory_deleted", subcategory_id=subcategory_id)
    return ApiResponse(success=True, message="Subcategory deleted successfully")


@router.patch(
    "/subcategories/{subcategory_id}",
    response_model=ApiResponse[SubcategoryItem],
    response_model_exclude_none=True,
)
async def toggle_subcategory_status(
    subcategory_id: str,
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[SubcategoryItem]:
    subcategory = await _get_subcategory(session, subcategory_id)
    subcategory.is_active = not subcategory.is_active
    subcategory.updated_at = _current_time()
    session.add(subcategory)
    await session.commit()
    state = "activated" if subcategory.is_active else "deactivated"
    return ApiResponse(
        success=True,
        message=f"Subcategory {state} successfully",
        data=to_subcategory_item(subcategory),
    )


@router.get(
    "/{category_id}",
    response_model=ApiResponse[CategoryItem],
    response_model_exclude_none=True,
)
async def get_category(
    category_id: str,
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[CategoryItem]:
    category = await _get_category(session, category_id)
    return ApiResponse(success=True, data=to_category_item(category))


@router.put(
    "/{category_id}",
    response_model=ApiResponse[CategoryItem],
    response_model_exclude_none=True,
)
async def update_category(
    category_id: str,
    title: str | None = Form(default=None),
    link: str | None = Form(default=None),
    icon_url: str | None = Form(default=None, alias="iconUrl"),
    image_url: str | None = Form(default=None, alias="imageUrl"),
    desktop_breadcrumb_url: str | None = Form(default=None, alias="desktopBreadcrumbUrl"),
    mobile_breadcrumb_url: str | None = Form(default=None, alias="mobileBreadcrumbUrl"),
    is_active: str | None = Form(default=None, alias="isActive"),
    sort_order: str | None = Form(default=None, alias="sortOrder"),
    icon: UploadFile | None = File(default=None),
    image: UploadFile | None = File(default=None),
    desktop_breadcrumb: UploadFile | None = File(default=None, alias="desktopBreadcrumb"),
    mobile_breadcrumb: UploadFile | None = File(default=None, alias="mobileBreadcrumb"),
    session: AsyncSession = Depends(get_session),
    storage: AssetStorage = Depends(get_asset_storage),
) -> ApiResponse[CategoryItem]:
    category = await _get_category(session, category_id)

    provided = {
        "title": title,
        "link": link,
        "iconUrl": icon_url,
        "imageUrl": image_url,
        "desktopBreadcrumbUrl": desktop_breadcrumb_url,
        "mobileBreadcrumbUrl": mobile_breadcrumb_url,
        "isActive": is_active,
        "sortOrder": sort_order,
    }
    payload: CategoryUpdateRequest = _validate_form(
        CategoryUpdateRequest,
        {key: value for key, value in provided.items() if value is not None},
    )
    asset_urls = await _store_assets(
        storage,
        {
            "icon": icon,
            "image": image,
            "desktopBreadcrumb": desktop_breadcrumb,
            "mobileBreadcrumb": mobile_breadcrumb,
        },
    )

    for field_name in payload.model_fields_set:
        value = getattr(payload, field_name)
        if field_name == "title":
            value = clean_taxonomy_name(value)
        setattr(category, field_name, value)
    for attribute, stored_path in asset_urls.items():
        setattr(category, attribute, stored_path)

    category.updated_at = _current_time()
    session.add(category)
    await session.commit()
    logger.info(
        "category_updated",
        category_id=category_id,
        fields=sorted(payload.model_fields_set),
        assets=sorted(asset_urls),
    )
    return ApiResponse(
        success=True,
        message="Category updated successfully",
        data=await load_category_item(session, category),
    )


@router.delete(
    "/{category_id}",
    response_model=ApiResponse[dict],
    response_model_exclude_none=True,
)
async def delete_category(
    category_id: str,
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[dict]:
    category = await _get_category(session, category_id)
    await delete_category_cascade(session, category)
    return ApiResponse(
        success=True,
        message="Category and associated subcategories deleted successfully",
    )


@router.patch(
    "/{category_id}",
    response_model=ApiResponse[CategoryItem],
    response_model_exclude_none=True,
)
async def toggle_category_status(
    category_id: str,
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[CategoryItem]:
    category = await _get_category(session, category_id)
    category.is_active = not category.is_active
    category.updated_at = _current_time()
    session.add(category)
    await session.commit()
    state = "activated" if category.is_active else "deactivated"
    return ApiResponse(
        success=True,
        message=f"Category {state} successfully",
        data=await load_category_item(session, category),
    )


@router.get(
    "/{category_id}/subcategories",
    response_model=ApiResponse[list[SubcategoryItem]],
    response_model_exclude_none=True,
)
async def list_category_subcategories(
    category_id: str,
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[list[SubcategoryItem]]:
    category_uuid = _parse_uuid(category_id, field_name="category_id")
    result = await session.execute(
        select(Subcategory)
        .where(
            Subcategory.category_id == category_uuid,
            Subcategory.is_active.is_(True),
        )
        .order_by(Subcategory.sort_order.asc(), Subcategory.created_at.asc())
    )
    items = [to_subcategory_item(sub) for sub in result.scalars().all()]
    return ApiResponse(success=True, data=items, count=len(items))


@router.post(
    "/{category_id}/subcategories",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[SubcategoryItem],
    response_model_exclude_none=True,
)
async def create_subcategory(
    category_id: str,
    payload: SubcategoryCreateRequest,
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[SubcategoryItem]:
    category = await _get_category(session, category_id)
    now = _current_time()
    subcategory = Subcategory(
        category_id=category.id,
        name=clean_taxonomy_name(payload.name),
        is_active=payload.is_active,
        sort_order=payload.sort_order,
        created_at=now,
        updated_at=now,
    )
    session.add(subcategory)
    await session.commit()
    logger.info("subcategory_created", category_id=category_id, subcategory_id=str(subcategory.id))
    return ApiResponse(
        success=True,
        message="Subcategory created successfully",
        data=to_subcategory_item(subcategory),
    )
