import itertools
from collections.abc import Callable
from typing import Generic, TypeVar

from loguru import logger

T = TypeVar("T")


class ListenerRegistry(Generic[T]):
    """Synchronous fan-out of change notifications to subscribed callbacks.

    Callbacks run in subscription order on the caller's stack. A callback that
    raises is logged and does not prevent the remaining callbacks from running.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._callbacks: dict[int, Callable[[T], None]] = {}
        self._id_generator = itertools.count(1)

    def subscribe(self, callback: Callable[[T], None]) -> int:
        """Registers ``callback`` and returns an id for `unsubscribe`."""
        sub_id = next(self._id_generator)
        self._callbacks[sub_id] = callback
        logger.debug(f"[{self.name}] New listener (ID: {sub_id}).")
        return sub_id

    def unsubscribe(self, sub_id: int) -> None:
        if self._callbacks.pop(sub_id, None) is None:
            logger.warning(f"[{self.name}] Unsubscribe with invalid ID: {sub_id}")

    def notify(self, value: T) -> None:
        # Copy so listeners may unsubscribe while being notified.
        for sub_id, callback in list(self._callbacks.items()):
            try:
                callback(value)
            except Exception:  # noqa: PERF203
                logger.exception(f"[{self.name}] Listener {sub_id} raised.")
