import asyncio
from collections.abc import Awaitable, Callable

import pytest

from coinscope.errors import MalformedPayload, NetworkFailure
from coinscope.fetcher import FetchCoordinator
from coinscope.models import ALLOWED_TRANSITIONS, RequestStatus


def record_transitions(
    coordinator: FetchCoordinator[str],
) -> list[tuple[RequestStatus, RequestStatus]]:
    """Subscribes a listener that records every (old, new) status change."""
    transitions: list[tuple[RequestStatus, RequestStatus]] = []
    last = [coordinator.status]

    def on_change(c: FetchCoordinator[str]) -> None:
        if c.status is not last[0]:
            transitions.append((last[0], c.status))
            last[0] = c.status

    coordinator.listeners.subscribe(on_change)
    return transitions


def returning(
    value: str, calls: list[str] | None = None
) -> Callable[[], Awaitable[str]]:
    """Helper that builds a loader resolving to ``value``."""

    async def loader() -> str:
        if calls is not None:
            calls.append(value)
        await asyncio.sleep(0)
        return value

    return loader


@pytest.mark.asyncio
async def test_initial_state_is_idle() -> None:
    """Tests that a new coordinator exposes nothing."""
    coordinator: FetchCoordinator[str] = FetchCoordinator("test")
    assert coordinator.status is RequestStatus.IDLE
    assert coordinator.key is None
    assert coordinator.result is None
    assert coordinator.error is None


@pytest.mark.asyncio
async def test_successful_fetch() -> None:
    """Tests IDLE -> LOADING -> SUCCESS and result visibility."""
    coordinator: FetchCoordinator[str] = FetchCoordinator("test")
    transitions = record_transitions(coordinator)

    assert coordinator.request("bitcoin", returning("btc-data"))
    assert coordinator.status is RequestStatus.LOADING
    assert coordinator.result is None

    await coordinator.wait()

    assert coordinator.status is RequestStatus.SUCCESS
    assert coordinator.result == "btc-data"
    assert coordinator.key == "bitcoin"
    assert transitions == [
        (RequestStatus.IDLE, RequestStatus.LOADING),
        (RequestStatus.LOADING, RequestStatus.SUCCESS),
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc",
    [
        NetworkFailure("HTTP 503", status_code=503),
        MalformedPayload("missing prices"),
        KeyError("unexpected"),
    ],
)
async def test_failed_fetch_moves_to_error(exc: Exception) -> None:
    """Tests that every failure collapses to ERROR without a result."""
    coordinator: FetchCoordinator[str] = FetchCoordinator("test")

    async def failing() -> str:
        raise exc

    coordinator.request("bitcoin", failing)
    await coordinator.wait()

    assert coordinator.status is RequestStatus.ERROR
    assert coordinator.error is exc
    assert coordinator.result is None


@pytest.mark.asyncio
async def test_same_trigger_runs_once() -> None:
    """Tests that repeating a loading or loaded key never re-fetches."""
    coordinator: FetchCoordinator[str] = FetchCoordinator("test")
    calls: list[str] = []

    assert coordinator.request("bitcoin", returning("btc", calls))
    assert not coordinator.request("bitcoin", returning("btc", calls))
    await coordinator.wait()
    assert not coordinator.request("bitcoin", returning("btc", calls))
    await coordinator.wait()

    assert calls == ["btc"]


@pytest.mark.asyncio
async def test_same_trigger_after_error_fetches_again() -> None:
    """Tests that an errored key can be requested again."""
    coordinator: FetchCoordinator[str] = FetchCoordinator("test")

    async def failing() -> str:
        raise NetworkFailure("down")

    coordinator.request("bitcoin", failing)
    await coordinator.wait()
    assert coordinator.status is RequestStatus.ERROR

    assert coordinator.request("bitcoin", returning("btc"))
    await coordinator.wait()
    assert coordinator.result == "btc"


@pytest.mark.asyncio
async def test_newer_trigger_supersedes_in_flight_fetch() -> None:
    """Tests that the stale fetch is cancelled and only the newest lands."""
    coordinator: FetchCoordinator[str] = FetchCoordinator("test")
    transitions = record_transitions(coordinator)
    cancelled = asyncio.Event()

    async def slow_bitcoin() -> str:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return "btc"

    coordinator.request("bitcoin", slow_bitcoin)
    await asyncio.sleep(0)
    coordinator.request("ethereum", returning("eth"))
    assert coordinator.status is RequestStatus.LOADING

    await coordinator.wait()

    assert cancelled.is_set()
    assert coordinator.key == "ethereum"
    assert coordinator.result == "eth"
    assert transitions == [
        (RequestStatus.IDLE, RequestStatus.LOADING),
        (RequestStatus.LOADING, RequestStatus.SUCCESS),
    ]


@pytest.mark.asyncio
async def test_stale_response_is_discarded_even_if_it_completes() -> None:
    """Tests the generation check for a loader that ignores cancellation."""
    coordinator: FetchCoordinator[str] = FetchCoordinator("test")
    successes: list[str | None] = []
    coordinator.listeners.subscribe(
        lambda c: successes.append(c.result)
        if c.status is RequestStatus.SUCCESS
        else None
    )

    async def stubborn() -> str:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            return "stale"
        return "never"

    coordinator.request("bitcoin", stubborn)
    await asyncio.sleep(0)
    coordinator.request("ethereum", returning("fresh"))
    await coordinator.wait()
    await asyncio.sleep(0.01)

    assert coordinator.result == "fresh"
    assert successes == ["fresh"]


@pytest.mark.asyncio
async def test_result_is_cleared_when_a_new_trigger_starts() -> None:
    """Tests that the previous trigger's data is not visible while loading."""
    coordinator: FetchCoordinator[str] = FetchCoordinator("test")
    coordinator.request("bitcoin", returning("btc"))
    await coordinator.wait()
    assert coordinator.result == "btc"

    coordinator.request("ethereum", returning("eth"))

    assert coordinator.status is RequestStatus.LOADING
    assert coordinator.result is None
    await coordinator.wait()


@pytest.mark.asyncio
async def test_every_observed_transition_is_allowed() -> None:
    """Tests the state machine over a mixed sequence of outcomes."""
    coordinator: FetchCoordinator[str] = FetchCoordinator("test")
    transitions = record_transitions(coordinator)

    async def failing() -> str:
        raise NetworkFailure("down")

    coordinator.request("a", returning("a"))
    await coordinator.wait()
    coordinator.refresh()
    await coordinator.wait()
    coordinator.request("b", failing)
    await coordinator.wait()
    coordinator.request("c", returning("c"))
    coordinator.request("d", returning("d"))
    await coordinator.wait()

    assert transitions
    for old, new in transitions:
        assert new in ALLOWED_TRANSITIONS[old]
    assert transitions[0] == (RequestStatus.IDLE, RequestStatus.LOADING)


@pytest.mark.asyncio
async def test_illegal_transition_raises() -> None:
    """Tests that skipping LOADING is rejected."""
    coordinator: FetchCoordinator[str] = FetchCoordinator("test")
    with pytest.raises(RuntimeError, match="Illegal status change"):
        coordinator._transition(RequestStatus.SUCCESS)


@pytest.mark.asyncio
async def test_refresh_requires_a_previous_trigger() -> None:
    """Tests that refresh without any request does nothing."""
    coordinator: FetchCoordinator[str] = FetchCoordinator("test")
    assert not coordinator.refresh()
    assert coordinator.status is RequestStatus.IDLE


@pytest.mark.asyncio
async def test_refresh_recovers_from_error() -> None:
    """Tests manual recovery: the same loader runs again on refresh."""
    coordinator: FetchCoordinator[str] = FetchCoordinator("test")
    attempts: list[int] = []

    async def flaky() -> str:
        attempts.append(1)
        if len(attempts) == 1:
            raise NetworkFailure("timeout")
        return "ok"

    coordinator.request("markets", flaky)
    await coordinator.wait()
    assert coordinator.status is RequestStatus.ERROR

    assert coordinator.refresh()
    await coordinator.wait()

    assert coordinator.status is RequestStatus.SUCCESS
    assert coordinator.result == "ok"
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_no_automatic_retry() -> None:
    """Tests that a failure is not retried on its own."""
    coordinator: FetchCoordinator[str] = FetchCoordinator("test")
    attempts: list[int] = []

    async def failing() -> str:
        attempts.append(1)
        raise NetworkFailure("down")

    coordinator.request("markets", failing)
    await coordinator.wait()
    await asyncio.sleep(0.05)

    assert len(attempts) == 1
    assert coordinator.status is RequestStatus.ERROR


@pytest.mark.asyncio
async def test_aclose_cancels_in_flight_fetch() -> None:
    """Tests that closing cancels the task and drops its outcome."""
    coordinator: FetchCoordinator[str] = FetchCoordinator("test")
    cancelled = asyncio.Event()

    async def slow() -> str:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return "late"

    coordinator.request("bitcoin", slow)
    await asyncio.sleep(0)
    await coordinator.aclose()

    assert cancelled.is_set()
    assert coordinator.result is None


@pytest.mark.asyncio
async def test_listener_errors_do_not_break_notification() -> None:
    """Tests that a failing listener does not stop the others."""
    coordinator: FetchCoordinator[str] = FetchCoordinator("test")
    seen: list[RequestStatus] = []

    def broken(_: FetchCoordinator[str]) -> None:
        raise ValueError("listener bug")

    coordinator.listeners.subscribe(broken)
    sub_id = coordinator.listeners.subscribe(lambda c: seen.append(c.status))

    coordinator.request("bitcoin", returning("btc"))
    await coordinator.wait()
    coordinator.listeners.unsubscribe(sub_id)
    coordinator.refresh()
    await coordinator.wait()

    assert seen == [RequestStatus.LOADING, RequestStatus.SUCCESS]
