import asyncio
from collections.abc import Callable

import pytest

from catalog_admin.console.errors import NetworkError, RepositoryError, ValidationError
from catalog_admin.console.manager import TaxonomyManager
from catalog_admin.console.memory_repository import InMemoryTaxonomyRepository
from catalog_admin.console.notifier import Notifier
from catalog_admin.console.types import (
    AssetSlot,
    CategoryAssets,
    CategoryFields,
    CategoryForm,
    ClearAsset,
    FormMode,
    KeepAsset,
    PendingFile,
    StagedSubcategory,
    SubcategoryDraft,
)
from catalog_admin.schemas.taxonomy import CategoryItem

OPERATIONS = (
    "list_categories",
    "create_category_with_subcategories",
    "update_category",
    "delete_category",
    "toggle_category_active",
    "create_subcategory",
    "update_subcategory",
    "delete_subcategory",
    "toggle_subcategory_active",
)


class RecordingNotifier(Notifier):
    def __init__(self) -> None:
        self.successes: list[str] = []
        self.errors: list[str] = []

    def success(self, message: str) -> None:
        self.successes.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)


class RecordingRepository(InMemoryTaxonomyRepository):
    """In-memory repository that records calls and can hold a response back."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[str] = []
        self.gates: dict[str, asyncio.Event] = {}
        for name in OPERATIONS:
            setattr(self, name, self._recorded(name, getattr(self, name)))

    def _recorded(self, name: str, method):
        async def wrapper(*args, **kwargs):
            self.calls.append(name)
            result = await method(*args, **kwargs)
            gate = self.gates.pop(name, None)
            if gate is not None:
                await gate.wait()
            return result

        return wrapper

    def hold(self, name: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[name] = gate
        return gate

    @property
    def writes(self) -> list[str]:
        return [call for call in self.calls if call != "list_categories"]


async def wait_until(predicate: Callable[[], bool]) -> None:
    for _ in range(100):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition was never reached")


@pytest.fixture
def repository() -> RecordingRepository:
    return RecordingRepository()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def manager(repository: RecordingRepository, notifier: RecordingNotifier) -> TaxonomyManager:
    return TaxonomyManager(repository, notifier)


async def seed_category(
    repository: RecordingRepository,
    title: str,
    *subcategories: str,
    **fields,
) -> CategoryItem:
    assets = fields.pop("assets", CategoryAssets())
    result = await repository.create_category_with_subcategories(
        CategoryFields(title=title, **fields),
        [StagedSubcategory(name=name, sort_order=index) for index, name in enumerate(subcategories)],
        assets,
    )
    assert result.success
    repository.calls.clear()
    return result.data


@pytest.mark.asyncio
async def test_create_category_with_staged_subcategories(
    manager: TaxonomyManager,
    repository: RecordingRepository,
    notifier: RecordingNotifier,
) -> None:
    state = manager.begin_create_category()
    state.form.title = "Rings"
    state.form.link = "/rings"
    manager.add_staged_subcategory("Gold")
    manager.add_staged_subcategory("Silver")

    assert await manager.submit_category() is True

    assert repository.calls == ["create_category_with_subcategories", "list_categories"]
    assert notifier.successes == ["Category and subcategories created successfully!"]
    assert manager.category_form is None
    assert len(manager.categories) == 1
    rings = manager.categories[0]
    assert rings.title == "Rings"
    assert rings.link == "/rings"
    assert sorted(sub.name for sub in rings.subcategories) == ["Gold", "Silver"]
    assert all(sub.id for sub in rings.subcategories)


@pytest.mark.asyncio
async def test_submit_with_explicit_arguments_opens_a_create_form(
    manager: TaxonomyManager,
    repository: RecordingRepository,
) -> None:
    submitted = await manager.submit_category(
        CategoryForm(title="Necklaces", link="/necklaces", sort_order=2),
        [StagedSubcategory(name="Chains", sort_order=1)],
    )

    assert submitted is True
    assert repository.writes == ["create_category_with_subcategories"]
    assert manager.categories[0].sort_order == 2
    assert [sub.name for sub in manager.categories[0].subcategories] == ["Chains"]


@pytest.mark.asyncio
@pytest.mark.parametrize("link", ["bangles", "rings/gold", "https://example.com/rings"])
async def test_link_without_leading_slash_is_rejected_locally(
    manager: TaxonomyManager,
    repository: RecordingRepository,
    notifier: RecordingNotifier,
    link: str,
) -> None:
    state = manager.begin_create_category()
    state.form.title = "Bangles"
    state.form.link = link

    with pytest.raises(ValidationError, match="invalid link"):
        await manager.submit_category()

    assert repository.calls == []
    assert notifier.errors == ["invalid link"]
    assert manager.category_form is state
    assert state.error == "invalid link"
    assert state.submitting is False


@pytest.mark.asyncio
async def test_title_is_required(manager: TaxonomyManager, repository: RecordingRepository) -> None:
    state = manager.begin_create_category()
    state.form.title = "   "

    with pytest.raises(ValidationError, match="title required"):
        await manager.submit_category()
    assert repository.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("blank", [" ", "\t", "   \n"])
async def test_whitespace_only_staged_name_is_rejected(
    manager: TaxonomyManager,
    repository: RecordingRepository,
    blank: str,
) -> None:
    state = manager.begin_create_category()
    state.form.title = "Rings"
    manager.add_staged_subcategory("Gold")
    state.staged.append(StagedSubcategory(name=blank, sort_order=2))

    with pytest.raises(ValidationError, match="subcategory name required"):
        await manager.submit_category()

    assert repository.calls == []
    assert len(state.staged) == 3


@pytest.mark.asyncio
async def test_blank_placeholder_rows_are_dropped_on_submit(
    manager: TaxonomyManager,
    repository: RecordingRepository,
) -> None:
    state = manager.begin_create_category()
    state.form.title = "Rings"

    assert await manager.submit_category() is True
    assert manager.categories[0].subcategories == []


@pytest.mark.asyncio
async def test_clearing_an_asset_is_rejected(
    manager: TaxonomyManager,
    repository: RecordingRepository,
) -> None:
    state = manager.begin_create_category()
    state.form.title = "Rings"
    state.assets.set(AssetSlot.ICON, ClearAsset())

    with pytest.raises(ValidationError, match="clearing an asset is not supported"):
        await manager.submit_category()
    assert repository.calls == []


def test_add_blank_staged_subcategory_is_a_noop(manager: TaxonomyManager) -> None:
    state = manager.begin_create_category()
    before = len(state.staged)

    assert manager.add_staged_subcategory("") is None
    assert manager.add_staged_subcategory("   ") is None
    assert len(state.staged) == before


def test_staged_subcategories_are_numbered_in_insertion_order(manager: TaxonomyManager) -> None:
    state = manager.begin_create_category()
    manager.add_staged_subcategory("Rings")
    manager.add_staged_subcategory("  Chains ")

    named = [sub for sub in state.staged if sub.name]
    assert [(sub.name, sub.sort_order) for sub in named] == [("Rings", 1), ("Chains", 2)]


def test_removing_a_staged_subcategory_does_not_renumber(manager: TaxonomyManager) -> None:
    state = manager.begin_create_category()
    for name in ("Gold", "Silver", "Platinum"):
        manager.add_staged_subcategory(name)

    removed = manager.remove_staged_subcategory(2)

    assert removed.name == "Silver"
    assert [sub.sort_order for sub in state.staged if sub.name] == [1, 3]
    with pytest.raises(IndexError):
        manager.remove_staged_subcategory(10)


def test_staging_requires_an_open_create_form(manager: TaxonomyManager) -> None:
    with pytest.raises(ValidationError):
        manager.add_staged_subcategory("Gold")


@pytest.mark.asyncio
async def test_load_all_twice_yields_the_same_list(
    manager: TaxonomyManager,
    repository: RecordingRepository,
) -> None:
    await seed_category(repository, "Rings", "Gold", "Silver", link="/rings")
    await seed_category(repository, "Chains", sort_order=1)

    assert await manager.load_all() is True
    first = [category.model_dump() for category in manager.categories]
    assert await manager.load_all() is True
    second = [category.model_dump() for category in manager.categories]

    assert first == second
    assert [category["title"] for category in first] == ["Rings", "Chains"]
    assert manager.is_loading is False


@pytest.mark.asyncio
async def test_load_failure_keeps_previous_list(
    manager: TaxonomyManager,
    repository: RecordingRepository,
    notifier: RecordingNotifier,
) -> None:
    await seed_category(repository, "Rings")
    await manager.load_all()

    async def unreachable():
        raise NetworkError("connection refused")

    repository.list_categories = unreachable

    assert await manager.load_all() is False
    assert [category.title for category in manager.categories] == ["Rings"]
    assert notifier.errors == ["Failed to fetch categories"]
    assert isinstance(manager.last_error, NetworkError)
    assert manager.is_loading is False


@pytest.mark.asyncio
async def test_only_the_latest_load_applies(
    manager: TaxonomyManager,
    repository: RecordingRepository,
) -> None:
    await seed_category(repository, "Rings")
    gate = repository.hold("list_categories")
    stale_load = asyncio.create_task(manager.load_all())
    await wait_until(lambda: "list_categories" in repository.calls)

    await seed_category(repository, "Chains", sort_order=1)
    assert await manager.load_all() is True
    gate.set()

    assert await stale_load is False
    assert [category.title for category in manager.categories] == ["Rings", "Chains"]


@pytest.mark.asyncio
async def test_toggle_category_active_reloads_with_new_state(
    manager: TaxonomyManager,
    repository: RecordingRepository,
    notifier: RecordingNotifier,
) -> None:
    rings = await seed_category(repository, "Rings")
    await manager.load_all()
    repository.calls.clear()

    assert await manager.toggle_category_active(rings.id) is True

    assert repository.calls == ["toggle_category_active", "list_categories"]
    assert manager.categories[0].is_active is False
    assert notifier.successes == ["Category status updated!"]


@pytest.mark.asyncio
async def test_delete_category_removes_its_subcategories(
    manager: TaxonomyManager,
    repository: RecordingRepository,
) -> None:
    rings = await seed_category(repository, "Rings", "Gold", "Silver")
    await seed_category(repository, "Chains", "Rope", sort_order=1)
    await manager.load_all()

    assert await manager.delete_category(rings.id) is True

    listing = await repository.list_categories()
    assert [category.title for category in listing.data] == ["Chains"]
    names = {sub.name for category in listing.data for sub in category.subcategories}
    assert names == {"Rope"}
    assert [category.title for category in manager.categories] == ["Chains"]


@pytest.mark.asyncio
async def test_failed_delete_leaves_list_untouched(
    manager: TaxonomyManager,
    repository: RecordingRepository,
    notifier: RecordingNotifier,
) -> None:
    await seed_category(repository, "Rings")
    await manager.load_all()
    repository.calls.clear()

    assert await manager.delete_category("missing") is False

    assert repository.calls == ["delete_category"]
    assert notifier.errors == ["Category not found"]
    assert [category.title for category in manager.categories] == ["Rings"]


@pytest.mark.asyncio
async def test_repository_rejection_keeps_form_open(
    manager: TaxonomyManager,
    repository: RecordingRepository,
    notifier: RecordingNotifier,
) -> None:
    state = manager.begin_create_category()
    state.form.title = "Rings"
    state.form.link = "/rings & more"
    manager.add_staged_subcategory("Gold")

    assert await manager.submit_category() is False

    assert repository.calls == ["create_category_with_subcategories"]
    assert notifier.errors == ["Validation failed"]
    assert isinstance(manager.last_error, RepositoryError)
    assert [err.path for err in manager.last_error.errors] == ["link"]
    assert manager.category_form is state
    assert state.error == "Validation failed"
    assert state.form.title == "Rings"
    assert [sub.name for sub in state.staged] == ["Gold"]
    assert state.submitting is False


@pytest.mark.asyncio
async def test_network_failure_on_submit_clears_submitting(
    manager: TaxonomyManager,
    repository: RecordingRepository,
    notifier: RecordingNotifier,
) -> None:
    async def unreachable(*args):
        raise NetworkError("timed out")

    repository.create_category_with_subcategories = unreachable
    state = manager.begin_create_category()
    state.form.title = "Rings"

    assert await manager.submit_category() is False

    assert notifier.errors == ["Failed to save category"]
    assert isinstance(manager.last_error, NetworkError)
    assert state.submitting is False
    assert manager.category_form is state


@pytest.mark.asyncio
async def test_unexpected_repository_exception_is_reported_as_failure(
    manager: TaxonomyManager,
    repository: RecordingRepository,
    notifier: RecordingNotifier,
) -> None:
    rings = await seed_category(repository, "Rings")
    await manager.load_all()

    async def reset(*args):
        raise ConnectionResetError("socket closed mid-call")

    repository.delete_category = reset

    assert await manager.delete_category(rings.id) is False

    assert notifier.errors == ["Failed to delete category"]
    assert isinstance(manager.last_error, NetworkError)
    assert [category.title for category in manager.categories] == ["Rings"]


@pytest.mark.asyncio
async def test_duplicate_submit_is_blocked_while_in_flight(
    manager: TaxonomyManager,
    repository: RecordingRepository,
) -> None:
    state = manager.begin_create_category()
    state.form.title = "Rings"
    gate = repository.hold("create_category_with_subcategories")

    first = asyncio.create_task(manager.submit_category())
    await wait_until(lambda: state.submitting)

    assert await manager.submit_category() is False
    gate.set()
    assert await first is True

    assert repository.writes == ["create_category_with_subcategories"]
    assert state.submitting is False


@pytest.mark.asyncio
async def test_late_response_for_closed_form_is_discarded(
    manager: TaxonomyManager,
    repository: RecordingRepository,
    notifier: RecordingNotifier,
) -> None:
    state = manager.begin_create_category()
    state.form.title = "Rings"
    gate = repository.hold("create_category_with_subcategories")

    pending = asyncio.create_task(manager.submit_category())
    await wait_until(lambda: state.submitting)
    manager.close_category_form()
    replacement = manager.begin_create_category()
    gate.set()

    assert await pending is True
    assert manager.category_form is replacement
    assert replacement.form.title == ""
    assert replacement.error is None
    assert notifier.successes == []
    assert [category.title for category in manager.categories] == ["Rings"]


@pytest.mark.asyncio
async def test_edit_category_passes_existing_assets_through(
    manager: TaxonomyManager,
    repository: RecordingRepository,
) -> None:
    assets = CategoryAssets()
    assets.set(AssetSlot.ICON, KeepAsset(url="/uploads/categories/icons/rings.png"))
    rings = await seed_category(repository, "Rings", "Gold", link="/rings", assets=assets)
    await manager.load_all()

    state = manager.begin_edit_category(manager.categories[0])
    assert state.mode is FormMode.EDIT
    assert state.staged == []
    assert state.assets.get(AssetSlot.ICON) == KeepAsset(url="/uploads/categories/icons/rings.png")
    assert state.assets.get(AssetSlot.IMAGE) is None

    state.form.title = "Gold Rings"
    manager.select_category_asset(
        AssetSlot.IMAGE,
        PendingFile(filename="banner.png", content=b"png", content_type="image/png"),
    )
    assert await manager.submit_category() is True

    edited = manager.categories[0]
    assert edited.id == rings.id
    assert edited.title == "Gold Rings"
    assert edited.link == "/rings"
    assert edited.icon_url == "/uploads/categories/icons/rings.png"
    assert edited.image_url.startswith("/uploads/categories/images/")
    assert [sub.name for sub in edited.subcategories] == ["Gold"]


@pytest.mark.asyncio
async def test_edit_with_replaced_asset_set_still_keeps_stored_urls(
    manager: TaxonomyManager,
    repository: RecordingRepository,
) -> None:
    assets = CategoryAssets()
    assets.set(AssetSlot.DESKTOP_BREADCRUMB, KeepAsset(url="/uploads/categories/breadcrumbs/d.png"))
    await seed_category(repository, "Rings", assets=assets)
    await manager.load_all()

    manager.begin_edit_category(manager.categories[0])
    assert await manager.submit_category(assets=CategoryAssets()) is True

    assert manager.categories[0].desktop_breadcrumb_url == "/uploads/categories/breadcrumbs/d.png"


@pytest.mark.asyncio
async def test_submitting_another_category_uses_its_own_stored_assets(
    manager: TaxonomyManager,
    repository: RecordingRepository,
) -> None:
    first_assets = CategoryAssets()
    first_assets.set(AssetSlot.ICON, KeepAsset(url="/uploads/a-icon.png"))
    second_assets = CategoryAssets()
    second_assets.set(AssetSlot.ICON, KeepAsset(url="/uploads/b-icon.png"))
    first = await seed_category(repository, "A", assets=first_assets)
    second = await seed_category(repository, "B", assets=second_assets)
    await manager.load_all()

    manager.begin_edit_category(next(c for c in manager.categories if c.id == first.id))
    assert await manager.submit_category(CategoryForm(id=second.id, title="B renamed")) is True

    by_id = {category.id: category for category in manager.categories}
    assert by_id[second.id].title == "B renamed"
    assert by_id[second.id].icon_url == "/uploads/b-icon.png"
    assert by_id[first.id].title == "A"
    assert by_id[first.id].icon_url == "/uploads/a-icon.png"


@pytest.mark.asyncio
async def test_asset_urls_are_resolved_against_the_asset_host(
    repository: RecordingRepository,
    notifier: RecordingNotifier,
) -> None:
    assets = CategoryAssets()
    assets.set(AssetSlot.ICON, KeepAsset(url="/uploads/categories/icons/rings.png"))
    assets.set(AssetSlot.IMAGE, KeepAsset(url="https://images.example.com/rings.png"))
    rings = await seed_category(repository, "Rings", assets=assets)
    manager = TaxonomyManager(repository, notifier, asset_base_url="https://cdn.example.com")

    assert manager.asset_urls(rings) == {
        AssetSlot.ICON: "https://cdn.example.com/uploads/categories/icons/rings.png",
        AssetSlot.IMAGE: "https://images.example.com/rings.png",
    }


@pytest.mark.asyncio
async def test_create_subcategory_requires_category(
    manager: TaxonomyManager,
    repository: RecordingRepository,
) -> None:
    with pytest.raises(ValidationError, match="category required"):
        await manager.create_subcategory(None, SubcategoryDraft(name="Gold"))
    with pytest.raises(ValidationError, match="subcategory name required"):
        await manager.create_subcategory("some-id", SubcategoryDraft(name="  "))
    assert repository.calls == []


@pytest.mark.asyncio
async def test_subcategory_operations_reload_after_each_write(
    manager: TaxonomyManager,
    repository: RecordingRepository,
    notifier: RecordingNotifier,
) -> None:
    rings = await seed_category(repository, "Rings")

    assert await manager.create_subcategory(rings.id, SubcategoryDraft(name=" Gold ", sort_order=1))
    gold = manager.categories[0].subcategories[0]
    assert gold.name == "Gold"

    assert await manager.edit_subcategory(gold.id, SubcategoryDraft(name="Rose Gold", sort_order=1))
    assert manager.categories[0].subcategories[0].name == "Rose Gold"

    assert await manager.toggle_subcategory_active(gold.id)
    assert manager.categories[0].subcategories[0].is_active is False

    assert await manager.delete_subcategory(gold.id)
    assert manager.categories[0].subcategories == []

    assert repository.writes == [
        "create_subcategory",
        "update_subcategory",
        "toggle_subcategory_active",
        "delete_subcategory",
    ]
    assert repository.calls.count("list_categories") == 4
    assert notifier.successes == [
        "Subcategory created successfully!",
        "Subcategory updated successfully!",
        "Subcategory status updated!",
        "Subcategory deleted successfully!",
    ]


@pytest.mark.asyncio
async def test_subcategory_form_workflow(
    manager: TaxonomyManager,
    repository: RecordingRepository,
) -> None:
    rings = await seed_category(repository, "Rings")
    await manager.load_all()

    manager.begin_create_category()
    state = manager.begin_create_subcategory(rings.id)
    assert manager.category_form is None

    state.form.name = "Gold"
    assert await manager.submit_subcategory() is True
    assert manager.subcategory_form is None

    gold = manager.categories[0].subcategories[0]
    edit = manager.begin_edit_subcategory(gold)
    assert edit.mode is FormMode.EDIT
    edit.form.name = ""
    with pytest.raises(ValidationError, match="subcategory name required"):
        await manager.submit_subcategory()
    assert manager.subcategory_form is edit
    assert edit.error == "subcategory name required"

    edit.form.name = "Yellow Gold"
    assert await manager.submit_subcategory() is True
    assert manager.categories[0].subcategories[0].name == "Yellow Gold"


def test_search_is_case_insensitive_and_pure(manager: TaxonomyManager) -> None:
    manager.categories = [
        CategoryItem(id="1", title="Gold Rings"),
        CategoryItem(id="2", title="Chains"),
        CategoryItem(id="3", title="Toe rings"),
    ]

    assert [category.id for category in manager.search("RINGS")] == ["1", "3"]
    assert manager.search("") == manager.categories
    assert manager.search("bangles") == []
    assert len(manager.categories) == 3


def test_expansion_is_independent_of_forms(manager: TaxonomyManager) -> None:
    manager.toggle_expansion("1")
    manager.begin_create_category()
    manager.begin_create_subcategory("1")
    assert manager.expanded_category_id == "1"

    manager.toggle_expansion("2")
    assert manager.expanded_category_id == "2"
    manager.toggle_expansion("2")
    assert manager.expanded_category_id is None
