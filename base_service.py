import datetime
import logging
import uuid
from typing import Callable, List, Optional

from db import LocalStore

Clock = Callable[[], datetime.datetime]


class RecordNotFoundError(LookupError):
    """Raised when an update targets an identifier absent from the store."""


def new_id() -> str:
    """Return a fresh record identifier."""
    return uuid.uuid4().hex


class BaseService:
    """Last published snapshot of a repository plus its loading flag and error.

    Load operations record failures on ``error`` and return normally. Mutations
    record the failure the same way and re-raise it.
    """

    def __init__(self, store: LocalStore, clock: Clock = datetime.datetime.now) -> None:
        self.store = store
        self.clock = clock
        self._loading = False
        self._error: Optional[str] = None
        self._subscribers: List[Callable[["BaseService"], None]] = []
        self._logger = logging.getLogger(type(self).__module__)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> Optional[str]:
        return self._error

    def subscribe(self, callback: Callable[["BaseService"], None]) -> Callable[[], None]:
        """Call ``callback`` with this service whenever its state is published."""
        if callback not in self._subscribers:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self) -> None:
        for callback in list(self._subscribers):
            callback(self)

    def _record_error(self, action: str, exc: BaseException) -> None:
        self._error = f"Failed to {action}: {exc}"
        self._logger.error("%s", self._error, exc_info=exc)
        self._publish()
