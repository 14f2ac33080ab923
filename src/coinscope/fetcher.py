import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from loguru import logger

from coinscope.errors import MarketDataError
from coinscope.models import ALLOWED_TRANSITIONS, RequestStatus
from coinscope.utils.listeners import ListenerRegistry

T = TypeVar("T")

Loader = Callable[[], Awaitable[T]]


class FetchCoordinator(Generic[T]):
    """Tracks one fetch concern through IDLE -> LOADING -> SUCCESS | ERROR.

    Each call to `request` is a *trigger* identified by a key (for example the
    selected asset id). The coordinator guarantees that:

    - a trigger runs its loader once; repeating the same key while it is
      loading or loaded does nothing, so redundant notifications never
      re-fetch;
    - the result is only readable while the status is SUCCESS, and is cleared
      as soon as a new trigger starts;
    - a newer trigger supersedes an older one: the old task is cancelled and,
      should it still complete, its outcome is discarded by generation check.

    No retry is ever scheduled; `refresh` is the manual recovery path.
    """

    def __init__(
        self, name: str, loop: asyncio.AbstractEventLoop | None = None
    ) -> None:
        """Initializes the coordinator.

        Args:
            name: Short label for log lines and listener diagnostics.
            loop: Loop that runs the fetch tasks. Defaults to the running loop,
                so a coordinator must be built inside async code.
        """
        self.name = name
        self._loop = loop or asyncio.get_running_loop()
        self.listeners: ListenerRegistry[FetchCoordinator[T]] = ListenerRegistry(name)
        self._status = RequestStatus.IDLE
        self._key: str | None = None
        self._loader: Loader[T] | None = None
        self._result: T | None = None
        self._error: Exception | None = None
        self._generation = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def status(self) -> RequestStatus:
        return self._status

    @property
    def key(self) -> str | None:
        """The key of the most recent trigger."""
        return self._key

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def result(self) -> T | None:
        """The latest successful result, or None unless the status is SUCCESS."""
        if self._status is not RequestStatus.SUCCESS:
            return None
        return self._result

    @property
    def error(self) -> Exception | None:
        """The cause of the failure, or None unless the status is ERROR."""
        if self._status is not RequestStatus.ERROR:
            return None
        return self._error

    def request(self, key: str, loader: Loader[T]) -> bool:
        """Starts a fetch for ``key`` unless that trigger is already served.

        Args:
            key: Identity of the trigger.
            loader: Zero-argument coroutine function performing the fetch.

        Returns:
            True if a new fetch was started.
        """
        if key == self._key and self._status in (
            RequestStatus.LOADING,
            RequestStatus.SUCCESS,
        ):
            logger.debug(f"[{self.name}] Trigger '{key}' already {self._status.value}.")
            return False
        self._begin(key, loader)
        return True

    def refresh(self) -> bool:
        """Re-runs the last trigger regardless of its status.

        Returns:
            False if nothing has been requested yet.
        """
        if self._key is None or self._loader is None:
            logger.warning(f"[{self.name}] Nothing to refresh yet.")
            return False
        logger.info(f"[{self.name}] Manual refresh of '{self._key}'.")
        self._begin(self._key, self._loader)
        return True

    async def wait(self) -> None:
        """Waits until no fetch is in flight, following any supersessions."""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    async def aclose(self) -> None:
        """Cancels the in-flight fetch and waits for it to unwind."""
        self._generation += 1
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        self.listeners = ListenerRegistry(self.name)
        logger.debug(f"[{self.name}] Closed.")

    def _begin(self, key: str, loader: Loader[T]) -> None:
        self._cancel_in_flight()
        self._generation += 1
        generation = self._generation
        self._key = key
        self._loader = loader
        self._result = None
        self._error = None
        # The task exists before listeners hear about LOADING, so a listener
        # that triggers again supersedes this fetch rather than racing it.
        self._task = self._loop.create_task(
            self._run(generation, key, loader), name=f"{self.name}-{generation}"
        )

        if self._status is RequestStatus.LOADING:
            logger.info(f"[{self.name}] Trigger '{key}' supersedes the pending fetch.")
            self.listeners.notify(self)
        else:
            self._transition(RequestStatus.LOADING)

    def _cancel_in_flight(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self, generation: int, key: str, loader: Loader[T]) -> None:
        try:
            result = await loader()
        except asyncio.CancelledError:
            logger.debug(f"[{self.name}] Fetch for '{key}' cancelled.")
            raise
        except MarketDataError as e:
            if self._is_stale(generation, key):
                return
            logger.error(f"[{self.name}] Fetch for '{key}' failed: {e}")
            self._error = e
            self._transition(RequestStatus.ERROR)
            return
        except Exception as e:
            if self._is_stale(generation, key):
                return
            logger.exception(f"[{self.name}] Unexpected error fetching '{key}'.")
            self._error = e
            self._transition(RequestStatus.ERROR)
            return

        if self._is_stale(generation, key):
            return
        self._result = result
        self._transition(RequestStatus.SUCCESS)

    def _is_stale(self, generation: int, key: str) -> bool:
        if generation == self._generation:
            return False
        logger.debug(
            f"[{self.name}] Discarding stale response for '{key}' "
            f"(generation {generation}, current {self._generation})."
        )
        return True

    def _transition(self, new_status: RequestStatus) -> None:
        if new_status not in ALLOWED_TRANSITIONS[self._status]:
            err_msg = (
                f"[{self.name}] Illegal status change "
                f"{self._status.value} -> {new_status.value}"
            )
            raise RuntimeError(err_msg)
        logger.debug(
            f"[{self.name}] {self._status.value} -> {new_status.value} ('{self._key}')"
        )
        self._status = new_status
        self.listeners.notify(self)
