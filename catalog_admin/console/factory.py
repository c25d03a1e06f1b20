from catalog_admin.console.http_repository import HttpTaxonomyRepository
from catalog_admin.console.manager import TaxonomyManager
from catalog_admin.console.memory_repository import InMemoryTaxonomyRepository
from catalog_admin.console.notifier import Notifier
from catalog_admin.console.repository import TaxonomyRepository
from catalog_admin.core.config import Settings, get_settings


class RepositoryNotConfiguredError(RuntimeError):
    """Raised when the configured taxonomy backend is unknown or incomplete."""


def get_taxonomy_repository(settings: Settings | None = None) -> TaxonomyRepository:
    settings = settings or get_settings()

    if settings.taxonomy_backend == "memory":
        return InMemoryTaxonomyRepository()
    if settings.taxonomy_backend == "http":
        if not settings.api_base_url:
            raise RepositoryNotConfiguredError(
                "API base URL is missing. Set API_BASE_URL in .env."
            )
        return HttpTaxonomyRepository(
            settings.api_base_url,
            token=settings.api_token,
            timeout=settings.request_timeout_seconds,
        )
    raise RepositoryNotConfiguredError(
        f"Unsupported taxonomy backend '{settings.taxonomy_backend}'"
    )


def build_taxonomy_manager(
    settings: Settings | None = None,
    notifier: Notifier | None = None,
) -> TaxonomyManager:
    settings = settings or get_settings()
    return TaxonomyManager(
        get_taxonomy_repository(settings),
        notifier=notifier,
        asset_base_url=settings.asset_base_url,
    )
