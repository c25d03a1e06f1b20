from abc import ABC, abstractmethod

from catalog_admin.console.types import (
    CategoryAssets,
    CategoryFields,
    RepositoryResult,
    StagedSubcategory,
    SubcategoryDraft,
)
from catalog_admin.schemas.taxonomy import CategoryItem, SubcategoryItem


class TaxonomyRepository(ABC):
    """Persistence boundary for categories and their subcategories.

    Every operation reports failure through the returned result; only a
    transport failure raises (``NetworkError``).
    """

    @abstractmethod
    async def list_categories(self) -> RepositoryResult[list[CategoryItem]]:
        raise NotImplementedError

    @abstractmethod
    async def create_category_with_subcategories(
        self,
        fields: CategoryFields,
        staged: list[StagedSubcategory],
        assets: CategoryAssets,
    ) -> RepositoryResult[CategoryItem]:
        """Persist the category and every staged subcategory, or nothing."""
        raise NotImplementedError

    @abstractmethod
    async def update_category(
        self,
        category_id: str,
        fields: CategoryFields,
        assets: CategoryAssets,
    ) -> RepositoryResult[CategoryItem]:
        raise NotImplementedError

    @abstractmethod
    async def delete_category(self, category_id: str) -> RepositoryResult[None]:
        raise NotImplementedError

    @abstractmethod
    async def toggle_category_active(self, category_id: str) -> RepositoryResult[CategoryItem]:
        raise NotImplementedError

    @abstractmethod
    async def create_subcategory(
        self,
        category_id: str,
        fields: SubcategoryDraft,
    ) -> RepositoryResult[SubcategoryItem]:
        raise NotImplementedError

    @abstractmethod
    async def update_subcategory(
        self,
        subcategory_id: str,
        fields: SubcategoryDraft,
    ) -> RepositoryResult[SubcategoryItem]:
        raise NotImplementedError

    @abstractmethod
    async def delete_subcategory(self, subcategory_id: str) -> RepositoryResult[None]:
        raise NotImplementedError

    @abstractmethod
    async def toggle_subcategory_active(
        self, subcategory_id: str
    ) -> RepositoryResult[SubcategoryItem]:
        raise NotImplementedError

    async def close(self) -> None:
        return None
