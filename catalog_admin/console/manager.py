"""Console-side orchestration of the category/subcategory taxonomy.

The manager owns the working list of categories and the state of the open
category or subcategory form. Every write goes through the repository and is
followed by a full reload; the list is never patched locally.
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import NoReturn

from catalog_admin.console.assets import resolve_asset_url
from catalog_admin.console.errors import (
    NetworkError,
    RepositoryError,
    TaxonomyError,
    ValidationError,
)
from catalog_admin.console.notifier import LogNotifier, Notifier
from catalog_admin.console.repository import TaxonomyRepository
from catalog_admin.console.types import (
    AssetSlot,
    CategoryAssets,
    CategoryFields,
    CategoryForm,
    CategoryFormState,
    FormMode,
    KeepAsset,
    PendingFile,
    ReplaceAsset,
    RepositoryResult,
    StagedSubcategory,
    SubcategoryDraft,
    SubcategoryForm,
    SubcategoryFormState,
)
from catalog_admin.core.logging import get_logger
from catalog_admin.schemas.taxonomy import CategoryItem, SubcategoryItem

logger = get_logger(__name__)

TITLE_REQUIRED = "title required"
INVALID_LINK = "invalid link"
INVALID_SORT_ORDER = "invalid sort order"
SUBCATEGORY_NAME_REQUIRED = "subcategory name required"
CATEGORY_REQUIRED = "category required"
CLEAR_UNSUPPORTED = "clearing an asset is not supported"
NO_FORM_OPEN = "no form is open"


class TaxonomyManager:
    def __init__(
        self,
        repository: TaxonomyRepository,
        notifier: Notifier | None = None,
        asset_base_url: str = "",
    ) -> None:
        self.repository = repository
        self.notifier = notifier or LogNotifier()
        self.asset_base_url = asset_base_url
        self.categories: list[CategoryItem] = []
        self.is_loading = False
        self.last_error: TaxonomyError | None = None
        self.category_form: CategoryFormState | None = None
        self.subcategory_form: SubcategoryFormState | None = None
        self.expanded_category_id: str | None = None
        self._load_generation = 0

    # -- reporting ---------------------------------------------------------

    def _report(self, error: TaxonomyError) -> None:
        self.last_error = error
        self.notifier.error(error.message)
        if isinstance(error, RepositoryError) and error.errors:
            logger.error(
                "repository_field_errors",
                message=error.message,
                errors=[err.model_dump() for err in error.errors],
            )

    def _reject(self, message: str, state: CategoryFormState | SubcategoryFormState | None = None) -> NoReturn:
        error = ValidationError(message)
        if state is not None:
            state.error = message
        self._report(error)
        raise error

    async def _execute(
        self,
        call: Awaitable[RepositoryResult],
        failure_message: str,
    ) -> tuple[RepositoryResult | None, TaxonomyError | None]:
        try:
            result = await call
        except NetworkError as exc:
            logger.warning("repository_unreachable", message=exc.message)
            return None, NetworkError(failure_message)
        except Exception:
            logger.exception("repository_call_failed", failure_message=failure_message)
            return None, NetworkError(failure_message)
        if not result.success:
            return result, RepositoryError(result.message or failure_message, result.errors)
        return result, None

    async def _mutate(
        self,
        call: Awaitable[RepositoryResult],
        *,
        success_message: str,
        failure_message: str,
    ) -> bool:
        _, error = await self._execute(call, failure_message)
        if error is not None:
            self._report(error)
            return False
        self.last_error = None
        self.notifier.success(success_message)
        await self.load_all()
        return True

    # -- listing -----------------------------------------------------------

    async def load_all(self) -> bool:
        self._load_generation += 1
        generation = self._load_generation
        self.is_loading = True
        try:
            result, error = await self._execute(
                self.repository.list_categories(), "Failed to fetch categories"
            )
        finally:
            if generation == self._load_generation:
                self.is_loading = False

        if generation != self._load_generation:
            logger.debug("stale_category_list_discarded", generation=generation)
            return False
        if error is not None:
            self._report(error)
            return False
        self.categories = list(result.data or [])
        logger.debug("categories_loaded", count=len(self.categories))
        return True

    def search(self, term: str) -> list[CategoryItem]:
        needle = term.lower()
        return [category for category in self.categories if needle in category.title.lower()]

    def toggle_expansion(self, category_id: str) -> None:
        if self.expanded_category_id == category_id:
            self.expanded_category_id = None
        else:
            self.expanded_category_id = category_id

    def asset_urls(self, category: CategoryItem) -> dict[AssetSlot, str]:
        """Absolute URLs for the stored assets of ``category``, keyed by slot."""
        return {
            slot: resolve_asset_url(getattr(category, slot.category_attribute), self.asset_base_url)
            for slot in AssetSlot
            if getattr(category, slot.category_attribute)
        }

    # -- category form -----------------------------------------------------

    def begin_create_category(self) -> CategoryFormState:
        self.subcategory_form = None
        self.category_form = CategoryFormState(
            mode=FormMode.CREATE,
            form=CategoryForm(),
            staged=[StagedSubcategory(name="", sort_order=1)],
        )
        return self.category_form

    @staticmethod
    def _stored_assets(category: CategoryItem) -> CategoryAssets:
        assets = CategoryAssets()
        for slot in AssetSlot:
            url = getattr(category, slot.category_attribute)
            if url:
                assets.set(slot, KeepAsset(url=url))
        return assets

    def _open_category_form(self, form: CategoryForm) -> CategoryFormState:
        self.subcategory_form = None
        source = None
        if form.id:
            source = next((item for item in self.categories if item.id == form.id), None)
        self.category_form = CategoryFormState(
            mode=FormMode.EDIT if form.id else FormMode.CREATE,
            form=form,
            assets=self._stored_assets(source) if source is not None else CategoryAssets(),
            source=source,
        )
        return self.category_form

    def begin_edit_category(self, category: CategoryItem) -> CategoryFormState:
        self.subcategory_form = None
        assets = self._stored_assets(category)
        self.category_form = CategoryFormState(
            mode=FormMode.EDIT,
            form=CategoryForm(
                id=category.id,
                title=category.title,
                link=category.link or "",
                is_active=category.is_active,
                sort_order=category.sort_order or 0,
            ),
            assets=assets,
            source=category,
        )
        return self.category_form

    def close_category_form(self) -> None:
        self.category_form = None

    def _require_create_form(self) -> CategoryFormState:
        state = self.category_form
        if state is None or state.mode is not FormMode.CREATE:
            raise ValidationError("no category is being created")
        return state

    def add_staged_subcategory(self, name: str) -> StagedSubcategory | None:
        state = self._require_create_form()
        cleaned = name.strip()
        if not cleaned:
            return None
        named_count = sum(1 for sub in state.staged if sub.name.strip())
        staged = StagedSubcategory(name=cleaned, is_active=True, sort_order=named_count + 1)
        state.staged.append(staged)
        return staged

    def remove_staged_subcategory(self, index: int) -> StagedSubcategory:
        state = self._require_create_form()
        if index < 0 or index >= len(state.staged):
            raise IndexError(f"no staged subcategory at position {index}")
        return state.staged.pop(index)

    def select_category_asset(self, slot: AssetSlot, file: PendingFile) -> None:
        if self.category_form is None:
            raise ValidationError(NO_FORM_OPEN)
        self.category_form.assets.set(slot, ReplaceAsset(file=file))

    def _validate_category(
        self, state: CategoryFormState
    ) -> tuple[CategoryFields, list[StagedSubcategory], CategoryAssets]:
        form = state.form
        title = form.title.strip()
        if not title:
            self._reject(TITLE_REQUIRED, state)
        link = form.link.strip()
        if link and not link.startswith("/"):
            self._reject(INVALID_LINK, state)
        if form.sort_order < 0:
            self._reject(INVALID_SORT_ORDER, state)

        staged: list[StagedSubcategory] = []
        if state.mode is FormMode.CREATE:
            for sub in state.staged:
                if not sub.name:
                    continue
                name = sub.name.strip()
                if not name:
                    self._reject(SUBCATEGORY_NAME_REQUIRED, state)
                staged.append(sub.model_copy(update={"name": name}))

        assets = state.assets.model_copy()
        if assets.cleared_slots():
            self._reject(CLEAR_UNSUPPORTED, state)
        if state.mode is FormMode.EDIT and state.source is not None:
            for slot in AssetSlot:
                existing = getattr(state.source, slot.category_attribute)
                if assets.get(slot) is None and existing:
                    assets.set(slot, KeepAsset(url=existing))

        fields = CategoryFields(
            title=title,
            link=link or None,
            is_active=form.is_active,
            sort_order=form.sort_order,
        )
        return fields, staged, assets

    async def submit_category(
        self,
        form: CategoryForm | None = None,
        staged: list[StagedSubcategory] | None = None,
        assets: CategoryAssets | None = None,
    ) -> bool:
        state = self.category_form
        if form is not None and (state is None or form.id != state.form.id):
            # A different category replaces the open form and its stored assets.
            state = self._open_category_form(form)
        elif state is None:
            raise ValidationError(NO_FORM_OPEN)
        if state.submitting:
            logger.warning("category_submit_in_flight", mode=state.mode.value)
            return False

        if form is not None:
            state.form = form
        if staged is not None:
            state.staged = list(staged)
        if assets is not None:
            state.assets = assets

        fields, valid_staged, outgoing_assets = self._validate_category(state)
        if state.mode is FormMode.CREATE:
            state.staged = valid_staged
        creating = state.mode is FormMode.CREATE

        state.submitting = True
        state.error = None
        try:
            if creating:
                call = self.repository.create_category_with_subcategories(
                    fields, valid_staged, outgoing_assets
                )
            else:
                call = self.repository.update_category(state.form.id, fields, outgoing_assets)
            result, error = await self._execute(call, "Failed to save category")
        finally:
            state.submitting = False

        if self.category_form is not state:
            logger.info("late_category_response_discarded", succeeded=error is None)
            if error is None:
                await self.load_all()
            return error is None

        if error is not None:
            state.error = error.message
            self._report(error)
            return False

        logger.info(
            "category_saved",
            mode=state.mode.value,
            category_id=result.data.id if result.data else state.form.id,
            subcategory_count=len(valid_staged),
        )
        self.notifier.success(
            "Category and subcategories created successfully!"
            if creating
            else "Category updated successfully!"
        )
        self.category_form = None
        self.last_error = None
        await self.load_all()
        return True

    async def delete_category(self, category_id: str) -> bool:
        return await self._mutate(
            self.repository.delete_category(category_id),
            success_message="Category deleted successfully!",
            failure_message="Failed to delete category",
        )

    async def toggle_category_active(self, category_id: str) -> bool:
        return await self._mutate(
            self.repository.toggle_category_active(category_id),
            success_message="Category status updated!",
            failure_message="Failed to update category status",
        )

    # -- subcategories -----------------------------------------------------

    def _validate_subcategory(
        self,
        draft: SubcategoryDraft,
        state: SubcategoryFormState | None = None,
    ) -> SubcategoryDraft:
        name = draft.name.strip()
        if not name:
            self._reject(SUBCATEGORY_NAME_REQUIRED, state)
        if draft.sort_order < 0:
            self._reject(INVALID_SORT_ORDER, state)
        return draft.model_copy(update={"name": name})

    async def create_subcategory(self, category_id: str | None, draft: SubcategoryDraft) -> bool:
        if not category_id:
            self._reject(CATEGORY_REQUIRED)
        fields = self._validate_subcategory(draft)
        return await self._mutate(
            self.repository.create_subcategory(category_id, fields),
            success_message="Subcategory created successfully!",
            failure_message="Failed to save subcategory",
        )

    async def edit_subcategory(self, subcategory_id: str, draft: SubcategoryDraft) -> bool:
        fields = self._validate_subcategory(draft)
        return await self._mutate(
            self.repository.update_subcategory(subcategory_id, fields),
            success_message="Subcategory updated successfully!",
            failure_message="Failed to save subcategory",
        )

    async def delete_subcategory(self, subcategory_id: str) -> bool:
        return await self._mutate(
            self.repository.delete_subcategory(subcategory_id),
            success_message="Subcategory deleted successfully!",
            failure_message="Failed to delete subcategory",
        )

    async def toggle_subcategory_active(self, subcategory_id: str) -> bool:
        return await self._mutate(
            self.repository.toggle_subcategory_active(subcategory_id),
            success_message="Subcategory status updated!",
            failure_message="Failed to update subcategory status",
        )

    def begin_create_subcategory(self, category_id: str) -> SubcategoryFormState:
        self.category_form = None
        self.subcategory_form = SubcategoryFormState(
            mode=FormMode.CREATE,
            form=SubcategoryForm(category_id=category_id),
        )
        return self.subcategory_form

    def begin_edit_subcategory(self, subcategory: SubcategoryItem) -> SubcategoryFormState:
        self.category_form = None
        self.subcategory_form = SubcategoryFormState(
            mode=FormMode.EDIT,
            form=SubcategoryForm(
                id=subcategory.id,
                category_id=subcategory.category_id,
                name=subcategory.name,
                is_active=subcategory.is_active,
                sort_order=subcategory.sort_order,
            ),
        )
        return self.subcategory_form

    def close_subcategory_form(self) -> None:
        self.subcategory_form = None

    async def submit_subcategory(self) -> bool:
        state = self.subcategory_form
        if state is None:
            raise ValidationError(NO_FORM_OPEN)
        if state.submitting:
            logger.warning("subcategory_submit_in_flight", mode=state.mode.value)
            return False

        form = state.form
        creating = state.mode is FormMode.CREATE
        if creating and not form.category_id:
            self._reject(CATEGORY_REQUIRED, state)
        fields = self._validate_subcategory(
            SubcategoryDraft(name=form.name, is_active=form.is_active, sort_order=form.sort_order),
            state,
        )

        state.submitting = True
        state.error = None
        try:
            if creating:
                call = self.repository.create_subcategory(form.category_id, fields)
            else:
                call = self.repository.update_subcategory(form.id, fields)
            _, error = await self._execute(call, "Failed to save subcategory")
        finally:
            state.submitting = False

        if self.subcategory_form is not state:
            logger.info("late_subcategory_response_discarded", succeeded=error is None)
            if error is None:
                await self.load_all()
            return error is None

        if error is not None:
            state.error = error.message
            self._report(error)
            return False

        self.notifier.success(
            "Subcategory created successfully!" if creating else "Subcategory updated successfully!"
        )
        self.subcategory_form = None
        self.last_error = None
        await self.load_all()
        return True
