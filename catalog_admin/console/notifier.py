from abc import ABC, abstractmethod

from catalog_admin.core.logging import get_logger


class Notifier(ABC):
    """User-facing message sink (toasts in the admin UI)."""

    @abstractmethod
    def success(self, message: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def error(self, message: str) -> None:
        raise NotImplementedError


class LogNotifier(Notifier):
    def __init__(self) -> None:
        self._logger = get_logger("catalog_admin.notifications")

    def success(self, message: str) -> None:
        self._logger.info("notify_success", message=message)

    def error(self, message: str) -> None:
        self._logger.warning("notify_error", message=message)
