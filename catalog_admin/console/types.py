from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Generic, Literal, TypeVar

from pydantic import BaseModel, Field

from catalog_admin.schemas.taxonomy import CamelModel, CategoryItem, FieldError

T = TypeVar("T")


class RepositoryResult(BaseModel, Generic[T]):
    success: bool
    data: T | None = None
    message: str | None = None
    errors: list[FieldError] = Field(default_factory=list)

    @classmethod
    def ok(cls, data: T | None = None, message: str | None = None) -> RepositoryResult[T]:
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, message: str, errors: list[FieldError] | None = None) -> RepositoryResult[T]:
        return cls(success=False, message=message, errors=list(errors or []))


class PendingFile(BaseModel):
    """A locally selected file that has not been uploaded yet."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


class KeepAsset(BaseModel):
    kind: Literal["keep"] = "keep"
    url: str


class ReplaceAsset(BaseModel):
    kind: Literal["replace"] = "replace"
    file: PendingFile


class ClearAsset(BaseModel):
    kind: Literal["clear"] = "clear"


AssetChange = Annotated[KeepAsset | ReplaceAsset | ClearAsset, Field(discriminator="kind")]


class AssetSlot(str, Enum):
    ICON = "icon"
    IMAGE = "image"
    DESKTOP_BREADCRUMB = "desktop_breadcrumb"
    MOBILE_BREADCRUMB = "mobile_breadcrumb"

    @property
    def file_field(self) -> str:
        return _SLOT_WIRE_FIELDS[self][0]

    @property
    def url_field(self) -> str:
        return _SLOT_WIRE_FIELDS[self][1]

    @property
    def category_attribute(self) -> str:
        return f"{self.value}_url"


_SLOT_WIRE_FIELDS: dict[AssetSlot, tuple[str, str]] = {
    AssetSlot.ICON: ("icon", "iconUrl"),
    AssetSlot.IMAGE: ("image", "imageUrl"),
    AssetSlot.DESKTOP_BREADCRUMB: ("desktopBreadcrumb", "desktopBreadcrumbUrl"),
    AssetSlot.MOBILE_BREADCRUMB: ("mobileBreadcrumb", "mobileBreadcrumbUrl"),
}


class CategoryAssets(BaseModel):
    icon: AssetChange | None = None
    image: AssetChange | None = None
    desktop_breadcrumb: AssetChange | None = None
    mobile_breadcrumb: AssetChange | None = None

    def get(self, slot: AssetSlot) -> KeepAsset | ReplaceAsset | ClearAsset | None:
        return getattr(self, slot.value)

    def set(self, slot: AssetSlot, change: KeepAsset | ReplaceAsset | ClearAsset | None) -> None:
        setattr(self, slot.value, change)

    def items(self) -> list[tuple[AssetSlot, KeepAsset | ReplaceAsset | ClearAsset]]:
        return [(slot, change) for slot in AssetSlot if (change := self.get(slot)) is not None]

    def cleared_slots(self) -> list[AssetSlot]:
        return [slot for slot, change in self.items() if isinstance(change, ClearAsset)]


def clear_rejection(assets: CategoryAssets) -> RepositoryResult | None:
    """Repositories cannot unset a stored asset; report the offending slots."""
    cleared = assets.cleared_slots()
    if not cleared:
        return None
    return RepositoryResult.fail(
        "Clearing an asset is not supported",
        [FieldError(path=slot.url_field, message="Asset cannot be cleared") for slot in cleared],
    )


class StagedSubcategory(CamelModel):
    """Subcategory draft composed before its parent category exists."""

    name: str = ""
    is_active: bool = True
    sort_order: int = 0


class SubcategoryDraft(CamelModel):
    name: str = ""
    is_active: bool = True
    sort_order: int = 0


class CategoryForm(BaseModel):
    id: str | None = None
    title: str = ""
    link: str = ""
    is_active: bool = True
    sort_order: int = 0


class CategoryFields(CamelModel):
    title: str
    link: str | None = None
    is_active: bool = True
    sort_order: int = 0


class SubcategoryForm(BaseModel):
    id: str | None = None
    category_id: str | None = None
    name: str = ""
    is_active: bool = True
    sort_order: int = 0


class FormMode(str, Enum):
    CREATE = "create"
    EDIT = "edit"


@dataclass
class CategoryFormState:
    mode: FormMode
    form: CategoryForm
    staged: list[StagedSubcategory] = field(default_factory=list)
    assets: CategoryAssets = field(default_factory=CategoryAssets)
    submitting: bool = False
    error: str | None = None
    source: CategoryItem | None = None


@dataclass
class SubcategoryFormState:
    mode: FormMode
    form: SubcategoryForm
    submitting: bool = False
    error: str | None = None
