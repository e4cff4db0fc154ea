"""Unit tests for the ClientSyncCoordinator state machine, driven by a manual scheduler."""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import pytest

from client_payments.application.interfaces import (
    RecordsTransport,
    Scheduler,
    TimerHandle,
    TransportError,
)
from client_payments.application.services import ClientSyncCoordinator, SyncState
from client_payments.application.services.client_sync_coordinator import InvalidSyncTransition
from client_payments.domain.entities import RecordsState, StorageSource
from client_payments.domain.exceptions import (
    ConflictError,
    InternalError,
    PreconditionRequiredError,
    RecordsValidationError,
    ServiceUnavailableError,
)

T0 = datetime(2026, 3, 15, 12, 0, 0, tzinfo=timezone.utc)
T1 = T0 + timedelta(seconds=1)
T2 = T0 + timedelta(seconds=2)
T3 = T0 + timedelta(seconds=3)


class ManualTimer(TimerHandle):
    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Timers fire only when the test says so; spawned coroutines run on demand."""

    def __init__(self):
        self.timers: list[ManualTimer] = []
        self.spawned: list = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = ManualTimer(delay, callback)
        self.timers.append(timer)
        return timer

    def spawn(self, coro) -> None:
        self.spawned.append(coro)

    @property
    def pending(self) -> list[ManualTimer]:
        return [timer for timer in self.timers if not timer.cancelled]

    def fire_pending(self) -> None:
        due, self.timers = self.pending, []
        for timer in due:
            timer.callback()

    async def run_spawned(self) -> None:
        while self.spawned:
            await self.spawned.pop(0)


class FakeTransport(RecordsTransport):
    def __init__(self, server_updated_at: datetime | None = T0):
        self.server_updated_at = server_updated_at
        self.replace_results: list = []
        self.replace_calls: list[tuple[list[dict], datetime | None]] = []
        self.fetch_calls = 0
        self.during_replace: Callable[[], None] | None = None
        self.gate: asyncio.Event | None = None

    async def fetch(self) -> RecordsState:
        self.fetch_calls += 1
        return RecordsState(records=[{"id": "a"}], updated_at=self.server_updated_at, source=StorageSource.LEGACY)

    async def replace(self, records, expected_updated_at):
        self.replace_calls.append((records, expected_updated_at))
        if self.during_replace is not None:
            hook, self.during_replace = self.during_replace, None
            hook()
        if self.gate is not None:
            await self.gate.wait()
        result = self.replace_results.pop(0)
        if isinstance(result, Exception):
            raise result
        self.server_updated_at = result
        return result


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def errors() -> list[Exception]:
    return []


@pytest.fixture
def coordinator(transport, scheduler, errors) -> ClientSyncCoordinator:
    return ClientSyncCoordinator(transport, scheduler, on_error=errors.append)


@pytest.mark.asyncio
async def test_hydrate_sets_clean_baseline(coordinator: ClientSyncCoordinator):
    await coordinator.hydrate()

    assert coordinator.state is SyncState.CLEAN
    assert coordinator.updated_at == T0
    assert coordinator.baseline_records == [{"id": "a"}]
    assert coordinator.should_warn_before_unload() is False


@pytest.mark.asyncio
async def test_local_change_is_debounced_then_saved(coordinator, transport, scheduler):
    await coordinator.hydrate()
    transport.replace_results.append(T1)

    coordinator.record_local_change([{"id": "a", "clientName": "first"}])
    coordinator.record_local_change([{"id": "a", "clientName": "second"}])

    assert coordinator.state is SyncState.SCHEDULED
    assert coordinator.should_warn_before_unload() is True
    assert [timer.delay for timer in scheduler.pending] == [0.9]

    scheduler.fire_pending()
    await scheduler.run_spawned()

    assert transport.replace_calls == [([{"id": "a", "clientName": "second"}], T0)]
    assert coordinator.state is SyncState.CLEAN
    assert coordinator.updated_at == T1
    assert coordinator.baseline_records == [{"id": "a", "clientName": "second"}]


@pytest.mark.asyncio
async def test_edit_during_flight_is_saved_after_debounce(coordinator, transport, scheduler):
    await coordinator.hydrate()
    transport.replace_results.extend([T1, T2])
    coordinator.record_local_change([{"id": "a", "n": "1"}])
    transport.during_replace = lambda: coordinator.record_local_change([{"id": "a", "n": "2"}])

    assert await coordinator.save_now() is True

    assert coordinator.state is SyncState.SCHEDULED
    assert coordinator.baseline_records == [{"id": "a", "n": "1"}]

    scheduler.fire_pending()
    await scheduler.run_spawned()

    assert transport.replace_calls[-1] == ([{"id": "a", "n": "2"}], T1)
    assert coordinator.state is SyncState.CLEAN


@pytest.mark.asyncio
async def test_timer_firing_during_flight_coalesces_into_one_follow_up_save(coordinator, transport, scheduler):
    await coordinator.hydrate()
    transport.replace_results.extend([T1, T2])
    coordinator.record_local_change([{"id": "a", "n": "1"}])

    def edit_and_retry():
        coordinator.record_local_change([{"id": "a", "n": "2"}])
        coordinator.retry_now()

    transport.during_replace = edit_and_retry

    await coordinator.save_now()
    assert len(scheduler.spawned) == 1
    await scheduler.run_spawned()

    assert [call[1] for call in transport.replace_calls] == [T0, T1]
    assert coordinator.state is SyncState.CLEAN
    assert coordinator.updated_at == T2


@pytest.mark.asyncio
async def test_conflict_retries_with_a_fresh_stamp(coordinator, transport, scheduler, errors):
    await coordinator.hydrate()
    transport.replace_results.extend([ConflictError(T1), T2])
    coordinator.record_local_change([{"id": "a", "n": "mine"}])

    await coordinator.save_now()

    assert coordinator.state is SyncState.RETRY_PENDING
    assert isinstance(errors[0], ConflictError)
    assert [timer.delay for timer in scheduler.pending] == [5.0]

    transport.server_updated_at = T1
    scheduler.fire_pending()
    await scheduler.run_spawned()

    assert transport.fetch_calls == 2
    assert transport.replace_calls[-1] == ([{"id": "a", "n": "mine"}], T1)
    assert coordinator.state is SyncState.CLEAN
    assert coordinator.updated_at == T2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [TransportError("connection reset"), ServiceUnavailableError("Records storage is unavailable.")],
)
async def test_transient_failures_wait_for_retry_timer(coordinator, transport, scheduler, error):
    await coordinator.hydrate()
    transport.replace_results.extend([error, T1])
    coordinator.record_local_change([{"id": "a", "n": "x"}])

    await coordinator.save_now()
    assert coordinator.state is SyncState.RETRY_PENDING

    coordinator.retry_now()
    assert scheduler.pending == []
    await scheduler.run_spawned()

    assert coordinator.state is SyncState.CLEAN
    assert transport.replace_calls[-1][1] == T0
    assert transport.fetch_calls == 1


@pytest.mark.asyncio
async def test_local_change_cancels_pending_retry(coordinator, transport, scheduler):
    await coordinator.hydrate()
    transport.replace_results.append(TransportError("offline"))
    coordinator.record_local_change([{"id": "a", "n": "1"}])
    await coordinator.save_now()
    retry_timer = scheduler.pending[0]

    coordinator.record_local_change([{"id": "a", "n": "2"}])

    assert retry_timer.cancelled is True
    assert coordinator.state is SyncState.SCHEDULED
    assert [timer.delay for timer in scheduler.pending] == [0.9]


@pytest.mark.asyncio
async def test_validation_rejection_waits_for_next_edit(coordinator, transport, scheduler, errors):
    await coordinator.hydrate()
    transport.replace_results.append(
        RecordsValidationError("Record at index 0 has invalid amount.", "records_payload_invalid_amount")
    )
    coordinator.record_local_change([{"id": "a", "payment1": "abc"}])

    assert await coordinator.save_now() is False

    assert coordinator.state is SyncState.DIRTY
    assert scheduler.pending == []
    assert errors[0].code == "records_payload_invalid_amount"

    coordinator.record_local_change([{"id": "a", "payment1": "10"}])
    assert coordinator.state is SyncState.SCHEDULED


@pytest.mark.asyncio
async def test_edits_before_hydration_do_not_save(coordinator, transport):
    coordinator.record_local_change([{"id": "early"}])

    assert coordinator.state is SyncState.DIRTY
    assert await coordinator.save_now() is False
    assert transport.replace_calls == []


@pytest.mark.asyncio
async def test_save_when_clean_is_a_no_op(coordinator, transport):
    await coordinator.hydrate()

    assert await coordinator.save_now() is True
    assert transport.replace_calls == []


@pytest.mark.asyncio
async def test_load_cancels_timers(coordinator, scheduler):
    await coordinator.hydrate()
    coordinator.record_local_change([{"id": "a", "n": "1"}])
    debounce = scheduler.pending[0]

    coordinator.load([{"id": "server"}], T3)

    assert debounce.cancelled is True
    assert coordinator.state is SyncState.CLEAN
    assert coordinator.local_records == [{"id": "server"}]


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [PreconditionRequiredError(), InternalError()])
async def test_non_retryable_server_errors_wait_for_next_edit(coordinator, transport, scheduler, errors, error):
    await coordinator.hydrate()
    transport.replace_results.append(error)
    coordinator.record_local_change([{"id": "a", "n": "x"}])

    assert await coordinator.save_now() is False

    assert coordinator.state is SyncState.DIRTY
    assert scheduler.pending == []
    assert errors == [error]


async def _start_gated_save(coordinator, transport, scheduler) -> asyncio.Task:
    await coordinator.hydrate()
    transport.replace_results.append(T1)
    transport.gate = asyncio.Event()
    coordinator.record_local_change([{"id": "a", "n": "mine"}])
    scheduler.fire_pending()
    saving = asyncio.create_task(scheduler.run_spawned())
    await asyncio.sleep(0)
    assert coordinator.state is SyncState.IN_FLIGHT
    return saving


@pytest.mark.asyncio
async def test_hydrate_during_save_reloads_after_the_save_settles(coordinator, transport, scheduler):
    saving = await _start_gated_save(coordinator, transport, scheduler)

    await coordinator.hydrate()

    assert transport.fetch_calls == 1
    assert coordinator.state is SyncState.IN_FLIGHT
    assert coordinator.local_records == [{"id": "a", "n": "mine"}]

    transport.gate.set()
    await saving

    assert transport.replace_calls == [([{"id": "a", "n": "mine"}], T0)]
    assert transport.fetch_calls == 2
    assert coordinator.state is SyncState.CLEAN
    assert coordinator.updated_at == T1
    assert coordinator.baseline_records == [{"id": "a"}]


@pytest.mark.asyncio
async def test_load_during_save_is_refused_and_changes_nothing(coordinator, transport, scheduler):
    saving = await _start_gated_save(coordinator, transport, scheduler)

    with pytest.raises(InvalidSyncTransition):
        coordinator.load([{"id": "server"}], T3)

    assert coordinator.state is SyncState.IN_FLIGHT
    assert coordinator.updated_at == T0
    assert coordinator.local_records == [{"id": "a", "n": "mine"}]

    transport.gate.set()
    await saving

    assert coordinator.state is SyncState.CLEAN
    assert coordinator.updated_at == T1
    assert coordinator.baseline_records == [{"id": "a", "n": "mine"}]
