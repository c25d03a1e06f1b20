from catalog_admin.schemas.taxonomy import FieldError


class TaxonomyError(Exception):
    """Base class for failures surfaced by the taxonomy console."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TaxonomyError):
    """Input rejected locally, before any repository call."""


class RepositoryError(TaxonomyError):
    """The repository answered with a non-success result."""

    def __init__(self, message: str, errors: list[FieldError] | None = None):
        super().__init__(message)
        self.errors = list(errors or [])


class NetworkError(TaxonomyError):
    """The repository could not be reached or the call blew up in transit."""
