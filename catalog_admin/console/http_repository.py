"""Taxonomy repository backed by the catalog REST API.

Category writes always go out as multipart/form-data so uploads travel with
the scalar fields; staged subcategories are sent as one JSON text field.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from catalog_admin.console.errors import NetworkError
from catalog_admin.console.repository import TaxonomyRepository
from catalog_admin.console.types import (
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
from catalog_admin.schemas.taxonomy import CategoryItem, FieldError, SubcategoryItem

logger = get_logger(__name__)

CATEGORIES_PATH = "/api/categories"

_category_list = TypeAdapter(list[CategoryItem])
_category = TypeAdapter(CategoryItem)
_subcategory_list = TypeAdapter(list[SubcategoryItem])
_subcategory = TypeAdapter(SubcategoryItem)


def _parse_field_errors(raw: Any) -> list[FieldError]:
    if not isinstance(raw, list):
        return []
    errors: list[FieldError] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        path = item.get("path", "")
        if isinstance(path, list):
            path = ".".join(str(part) for part in path)
        errors.append(FieldError(path=str(path), message=str(item.get("message", ""))))
    return errors


def _category_form_fields(fields: CategoryFields) -> dict[str, str]:
    data = {
        "title": fields.title,
        "isActive": "true" if fields.is_active else "false",
        "sortOrder": str(fields.sort_order),
    }
    if fields.link:
        data["link"] = fields.link
    return data


def _asset_parts(assets: CategoryAssets) -> tuple[dict[str, str], dict[str, tuple[str, bytes, str]]]:
    data: dict[str, str] = {}
    files: dict[str, tuple[str, bytes, str]] = {}
    for slot, change in assets.items():
        if isinstance(change, ReplaceAsset):
            files[slot.file_field] = (
                change.file.filename,
                change.file.content,
                change.file.content_type,
            )
        elif isinstance(change, KeepAsset):
            data[slot.url_field] = change.url
    return data, files


def _multipart(
    data: dict[str, str], files: dict[str, tuple[str, bytes, str]]
) -> list[tuple[str, tuple]]:
    # Scalar fields become filename-less parts so the body is multipart even without uploads.
    parts: list[tuple[str, tuple]] = [(name, (None, value)) for name, value in data.items()]
    parts.extend(files.items())
    return parts


class HttpTaxonomyRepository(TaxonomyRepository):
    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._token = token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self._token:
                headers["Authorization"] = f"Bearer {self._token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        fallback_message: str,
        adapter: TypeAdapter | None = None,
        **kwargs: Any,
    ) -> RepositoryResult:
        client = await self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("repository_request_failed", method=method, path=path, error=str(exc))
            raise NetworkError(fallback_message) from exc

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            logger.warning(
                "repository_unexpected_body",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            return RepositoryResult.fail(fallback_message)

        if response.is_success and body.get("success", True):
            data = None
            if adapter is not None and body.get("data") is not None:
                try:
                    data = adapter.validate_python(body["data"])
                except PydanticValidationError as exc:
                    logger.warning("repository_malformed_data", path=path, error=str(exc))
                    return RepositoryResult.fail(fallback_message)
            return RepositoryResult.ok(data, message=body.get("message"))

        errors = _parse_field_errors(body.get("errors"))
        message = body.get("message") or fallback_message
        if errors:
            message += ": " + ", ".join(f"{err.path}: {err.message}" for err in errors)
        logger.info(
            "repository_rejected",
            method=method,
            path=path,
            status_code=response.status_code,
            message=message,
        )
        return RepositoryResult.fail(message, errors)

    async def list_categories(self) -> RepositoryResult[list[CategoryItem]]:
        try:
            result = await self._request(
                "GET",
                f"{CATEGORIES_PATH}/admin/all",
                fallback_message="Failed to fetch categories",
                adapter=_category_list,
            )
            if result.success:
                if result.data is None:
                    result.data = []
                return result
            reason = result.message
        except NetworkError as exc:
            reason = exc.message
        logger.warning("admin_listing_unavailable", reason=reason, fallback="per-category")
        return await self._list_categories_per_category()

    async def _list_categories_per_category(self) -> RepositoryResult[list[CategoryItem]]:
        result = await self._request(
            "GET",
            CATEGORIES_PATH,
            fallback_message="Failed to fetch categories",
            adapter=_category_list,
        )
        if not result.success:
            return result

        categories: list[CategoryItem] = []
        for category in result.data or []:
            try:
                subs = await self._request(
                    "GET",
                    f"{CATEGORIES_PATH}/{category.id}/subcategories",
                    fallback_message="Failed to fetch subcategories",
                    adapter=_subcategory_list,
                )
                subcategories = (subs.data or []) if subs.success else []
            except NetworkError:
                subcategories = []
            categories.append(category.model_copy(update={"subcategories": subcategories}))
        return RepositoryResult.ok(categories)

    async def create_category_with_subcategories(
        self,
        fields: CategoryFields,
        staged: list[StagedSubcategory],
        assets: CategoryAssets,
    ) -> RepositoryResult[CategoryItem]:
        rejected = clear_rejection(assets)
        if rejected is not None:
            return rejected
        data = _category_form_fields(fields)
        if staged:
            data["subcategories"] = json.dumps([sub.model_dump(by_alias=True) for sub in staged])
        asset_data, files = _asset_parts(assets)
        data.update(asset_data)
        logger.debug(
            "category_create_payload",
            fields=sorted(data),
            files=sorted(files),
            staged_count=len(staged),
        )
        return await self._request(
            "POST",
            f"{CATEGORIES_PATH}/with-subcategories",
            fallback_message="Failed to create category",
            adapter=_category,
            files=_multipart(data, files),
        )

    async def update_category(
        self,
        category_id: str,
        fields: CategoryFields,
        assets: CategoryAssets,
    ) -> RepositoryResult[CategoryItem]:
        rejected = clear_rejection(assets)
        if rejected is not None:
            return rejected
        data = _category_form_fields(fields)
        asset_data, files = _asset_parts(assets)
        data.update(asset_data)
        return await self._request(
            "PUT",
            f"{CATEGORIES_PATH}/{category_id}",
            fallback_message="Failed to update category",
            adapter=_category,
            files=_multipart(data, files),
        )

    async def delete_category(self, category_id: str) -> RepositoryResult[None]:
        return await self._request(
            "DELETE",
            f"{CATEGORIES_PATH}/{category_id}",
            fallback_message="Failed to delete category",
        )

    async def toggle_category_active(self, category_id: str) -> RepositoryResult[CategoryItem]:
        return await self._request(
            "PATCH",
            f"{CATEGORIES_PATH}/{category_id}",
            fallback_message="Failed to toggle category status",
            adapter=_category,
        )

    async def create_subcategory(
        self,
        category_id: str,
        fields: SubcategoryDraft,
    ) -> RepositoryResult[SubcategoryItem]:
        return await self._request(
            "POST",
            f"{CATEGORIES_PATH}/{category_id}/subcategories",
            fallback_message="Failed to create subcategory",
            adapter=_subcategory,
            json=fields.model_dump(by_alias=True),
        )

    async def update_subcategory(
        self,
        subcategory_id: str,
        fields: SubcategoryDraft,
    ) -> RepositoryResult[SubcategoryItem]:
        return await self._request(
            "PUT",
            f"{CATEGORIES_PATH}/subcategories/{subcategory_id}",
            fallback_message="Failed to update subcategory",
            adapter=_subcategory,
            json=fields.model_dump(by_alias=True),
        )

    async def delete_subcategory(self, subcategory_id: str) -> RepositoryResult[None]:
        return await self._request(
            "DELETE",
            f"{CATEGORIES_PATH}/subcategories/{subcategory_id}",
            fallback_message="Failed to delete subcategory",
        )

    async def toggle_subcategory_active(
        self, subcategory_id: str
    ) -> RepositoryResult[SubcategoryItem]:
        return await self._request(
            "PATCH",
            f"{CATEGORIES_PATH}/subcategories/{subcategory_id}",
            fallback_message="Failed to toggle subcategory status",
            adapter=_subcategory,
        )
