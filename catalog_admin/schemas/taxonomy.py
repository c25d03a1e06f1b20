import re
from datetime import datetime
from typing import Annotated, Generic, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

LINK_PATTERN = re.compile(r"^/[a-zA-Z0-9\-/]*$")
LINK_ERROR = "Link must be a valid internal path (e.g., /products, /about)"

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubcategoryItem(CamelModel):
    id: str
    name: str
    category_id: str
    is_active: bool = True
    sort_order: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CategoryItem(CamelModel):
    id: str
    title: str
    link: str | None = None
    icon_url: str | None = None
    image_url: str | None = None
    desktop_breadcrumb_url: str | None = None
    mobile_breadcrumb_url: str | None = None
    is_active: bool = True
    sort_order: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    subcategories: list[SubcategoryItem] = Field(default_factory=list)


class FieldError(BaseModel):
    path: str
    message: str


class ApiResponse(BaseModel, Generic[T]):
    success: bool
    message: str | None = None
    data: T | None = None
    count: int | None = None
    errors: list[FieldError] | None = None


class _InputModel(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


def _validate_link(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if not LINK_PATTERN.match(value):
        raise PydanticCustomError("invalid_link", LINK_ERROR)
    return value


def _empty_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


InternalLink = Annotated[str | None, AfterValidator(_validate_link)]
AssetUrl = Annotated[str | None, AfterValidator(_empty_to_none)]


class StagedSubcategoryInput(_InputModel):
    name: str = Field(min_length=1, max_length=100)
    is_active: bool | None = None
    sort_order: int | None = Field(default=None, ge=0)


class CategoryCreateRequest(_InputModel):
    title: str = Field(min_length=1, max_length=100)
    link: InternalLink = None
    icon_url: AssetUrl = None
    image_url: AssetUrl = None
    is_active: bool = True
    sort_order: int = Field(default=0, ge=0)
    subcategories: list[StagedSubcategoryInput] = Field(default_factory=list)


class CategoryUpdateRequest(_InputModel):
    title: str | None = Field(default=None, min_length=1, max_length=100)
    link: InternalLink = None
    icon_url: AssetUrl = None
    image_url: AssetUrl = None
    desktop_breadcrumb_url: AssetUrl = None
    mobile_breadcrumb_url: AssetUrl = None
    is_active: bool | None = None
    sort_order: int | None = Field(default=None, ge=0)


class SubcategoryCreateRequest(_InputModel):
    name: str = Field(min_length=1, max_length=100)
    is_active: bool = True
    sort_order: int = Field(default=0, ge=0)


class SubcategoryUpdateRequest(_InputModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    is_active: bool | None = None
    sort_order: int | None = Field(default=None, ge=0)
