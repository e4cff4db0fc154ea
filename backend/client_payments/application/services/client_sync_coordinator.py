"""Client sync coordinator: the browser-side save loop as an explicit state machine.

Local edits are debounced into full-replace saves sent with the last known
version stamp. At most one save is in flight; edits made meanwhile are
remembered and saved afterwards. Transient failures retry on a timer, a
conflict re-reads the stamp first, and validation rejections wait for the
next edit.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum

from client_payments.application.interfaces import (
    RecordsTransport,
    Scheduler,
    TimerHandle,
    TransportError,
)
from client_payments.domain.entities import ClientRecord
from client_payments.domain.exceptions import ConflictError, RecordsError, ServiceUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.9
DEFAULT_RETRY_SECONDS = 5.0


class SyncState(str, Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    SCHEDULED = "scheduled"
    IN_FLIGHT = "in_flight"
    RETRY_PENDING = "retry_pending"


class SyncEvent(str, Enum):
    HYDRATED = "hydrated"
    EDIT_BEFORE_HYDRATION = "edit_before_hydration"
    LOCAL_CHANGE = "local_change"
    SAVE_STARTED = "save_started"
    SAVE_SUCCEEDED = "save_succeeded"
    SAVE_FAILED = "save_failed"
    SAVE_REJECTED = "save_rejected"


_TRANSITIONS: dict[tuple[SyncState, SyncEvent], SyncState] = {
    (SyncState.CLEAN, SyncEvent.HYDRATED): SyncState.CLEAN,
    (SyncState.CLEAN, SyncEvent.EDIT_BEFORE_HYDRATION): SyncState.DIRTY,
    (SyncState.CLEAN, SyncEvent.LOCAL_CHANGE): SyncState.SCHEDULED,
    (SyncState.DIRTY, SyncEvent.HYDRATED): SyncState.CLEAN,
    (SyncState.DIRTY, SyncEvent.EDIT_BEFORE_HYDRATION): SyncState.DIRTY,
    (SyncState.DIRTY, SyncEvent.LOCAL_CHANGE): SyncState.SCHEDULED,
    (SyncState.DIRTY, SyncEvent.SAVE_STARTED): SyncState.IN_FLIGHT,
    (SyncState.SCHEDULED, SyncEvent.HYDRATED): SyncState.CLEAN,
    (SyncState.SCHEDULED, SyncEvent.LOCAL_CHANGE): SyncState.SCHEDULED,
    (SyncState.SCHEDULED, SyncEvent.SAVE_STARTED): SyncState.IN_FLIGHT,
    (SyncState.IN_FLIGHT, SyncEvent.LOCAL_CHANGE): SyncState.IN_FLIGHT,
    (SyncState.IN_FLIGHT, SyncEvent.SAVE_SUCCEEDED): SyncState.CLEAN,
    (SyncState.IN_FLIGHT, SyncEvent.SAVE_FAILED): SyncState.RETRY_PENDING,
    (SyncState.IN_FLIGHT, SyncEvent.SAVE_REJECTED): SyncState.DIRTY,
    (SyncState.RETRY_PENDING, SyncEvent.HYDRATED): SyncState.CLEAN,
    (SyncState.RETRY_PENDING, SyncEvent.LOCAL_CHANGE): SyncState.SCHEDULED,
    (SyncState.RETRY_PENDING, SyncEvent.SAVE_STARTED): SyncState.IN_FLIGHT,
}


class InvalidSyncTransition(RuntimeError):
    def __init__(self, state: SyncState, event: SyncEvent):
        super().__init__(f"No transition from {state.value!r} on {event.value!r}")
        self.state = state
        self.event = event


class ClientSyncCoordinator:
    """Debounced, single-flight synchronisation of a local records snapshot."""

    def __init__(
        self,
        transport: RecordsTransport,
        scheduler: Scheduler,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        retry_seconds: float = DEFAULT_RETRY_SECONDS,
        on_error: Callable[[Exception], None] | None = None,
    ):
        self._transport = transport
        self._scheduler = scheduler
        self._debounce_seconds = debounce_seconds
        self._retry_seconds = retry_seconds
        self._on_error = on_error

        self._state = SyncState.CLEAN
        self._hydrated = False
        self._baseline_records: list[ClientRecord] = []
        self._baseline_updated_at: datetime | None = None
        self._local_records: list[ClientRecord] = []
        self._local_version = 0
        self._debounce_timer: TimerHandle | None = None
        self._retry_timer: TimerHandle | None = None
        self._coalesce = False
        self._refresh_before_save = False
        self._hydrate_after_save = False

    # ── Introspection ───────────────────────────────────────────────

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def updated_at(self) -> datetime | None:
        return self._baseline_updated_at

    @property
    def baseline_records(self) -> list[ClientRecord]:
        return [dict(record) for record in self._baseline_records]

    @property
    def local_records(self) -> list[ClientRecord]:
        return [dict(record) for record in self._local_records]

    def should_warn_before_unload(self) -> bool:
        """Advisory: unsaved or unconfirmed edits exist."""
        return self._state is not SyncState.CLEAN

    # ── Inputs ──────────────────────────────────────────────────────

    async def hydrate(self) -> None:
        """Load the server snapshot as the new baseline.

        While a save is in flight the reload is deferred until that save
        settles, then fetched again.
        """
        if self._state is SyncState.IN_FLIGHT:
            self._hydrate_after_save = True
            return
        snapshot = await self._transport.fetch()
        if self._state is SyncState.IN_FLIGHT:
            self._hydrate_after_save = True
            return
        self.load(snapshot.records, snapshot.updated_at)

    def load(self, records: list[ClientRecord], updated_at: datetime | None) -> None:
        """Adopt a server snapshot. Raises InvalidSyncTransition mid-save, changing nothing."""
        next_state = self._next_state(SyncEvent.HYDRATED)
        self._cancel_timers()
        self._baseline_records = [dict(record) for record in records]
        self._local_records = [dict(record) for record in records]
        self._baseline_updated_at = updated_at
        self._hydrated = True
        self._coalesce = False
        self._refresh_before_save = False
        self._hydrate_after_save = False
        self._enter(SyncEvent.HYDRATED, next_state)

    def record_local_change(self, records: list[ClientRecord]) -> None:
        self._local_records = [dict(record) for record in records]
        self._local_version += 1

        if not self._hydrated:
            self._transition(SyncEvent.EDIT_BEFORE_HYDRATION)
            return
        if self._state is SyncState.IN_FLIGHT:
            self._transition(SyncEvent.LOCAL_CHANGE)
            return

        self._cancel_retry()
        self._transition(SyncEvent.LOCAL_CHANGE)
        self._restart_debounce()

    def retry_now(self) -> None:
        """Drop any pending timer and save immediately."""
        self._cancel_timers()
        if self._state is SyncState.IN_FLIGHT:
            self._coalesce = True
            return
        self._scheduler.spawn(self.save_now())

    # ── Saving ──────────────────────────────────────────────────────

    async def save_now(self) -> bool:
        """Send the local snapshot. Returns True when the server accepted it."""
        if self._state is SyncState.IN_FLIGHT:
            self._coalesce = True
            return False
        if self._state is SyncState.CLEAN:
            return True
        if not self._hydrated:
            return False

        self._cancel_timers()
        self._transition(SyncEvent.SAVE_STARTED)
        sent_version = self._local_version
        snapshot = [dict(record) for record in self._local_records]

        try:
            if self._refresh_before_save:
                fresh = await self._transport.fetch()
                self._baseline_updated_at = fresh.updated_at
                self._refresh_before_save = False
            updated_at = await self._transport.replace(snapshot, self._baseline_updated_at)
        except (ConflictError, ServiceUnavailableError, TransportError) as exc:
            self._report(exc)
            if isinstance(exc, ConflictError):
                self._refresh_before_save = True
            self._transition(SyncEvent.SAVE_FAILED)
            self._coalesce = False
            if not self._resume_hydration():
                self._retry_timer = self._scheduler.call_later(self._retry_seconds, self._on_retry_timer)
            return False
        except RecordsError as exc:
            # Not retryable; the next local edit schedules another save.
            self._report(exc)
            self._transition(SyncEvent.SAVE_REJECTED)
            self._coalesce = False
            if self._resume_hydration():
                return False
            if self._local_version != sent_version:
                self._transition(SyncEvent.LOCAL_CHANGE)
                self._restart_debounce()
            return False

        self._baseline_records = snapshot
        self._baseline_updated_at = updated_at
        self._transition(SyncEvent.SAVE_SUCCEEDED)
        if self._resume_hydration():
            return True

        coalesce, self._coalesce = self._coalesce, False
        if self._local_version != sent_version:
            self._transition(SyncEvent.LOCAL_CHANGE)
            if coalesce:
                self._scheduler.spawn(self.save_now())
            else:
                self._restart_debounce()
        return True

    # ── Timers ──────────────────────────────────────────────────────

    def _restart_debounce(self) -> None:
        if self._debounce_timer is not None:
            self._debounce_timer.cancel()
        self._debounce_timer = self._scheduler.call_later(self._debounce_seconds, self._on_debounce_timer)

    def _on_debounce_timer(self) -> None:
        self._debounce_timer = None
        self._fire()

    def _on_retry_timer(self) -> None:
        self._retry_timer = None
        self._fire()

    def _fire(self) -> None:
        if self._state is SyncState.IN_FLIGHT:
            self._coalesce = True
            return
        self._scheduler.spawn(self.save_now())

    def _cancel_retry(self) -> None:
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None

    def _cancel_timers(self) -> None:
        self._cancel_retry()
        if self._debounce_timer is not None:
            self._debounce_timer.cancel()
            self._debounce_timer = None

    # ── Internals ───────────────────────────────────────────────────

    def _next_state(self, event: SyncEvent) -> SyncState:
        try:
            return _TRANSITIONS[(self._state, event)]
        except KeyError:
            raise InvalidSyncTransition(self._state, event) from None

    def _enter(self, event: SyncEvent, next_state: SyncState) -> None:
        logger.debug("Sync %s --%s--> %s", self._state.value, event.value, next_state.value)
        self._state = next_state

    def _transition(self, event: SyncEvent) -> None:
        self._enter(event, self._next_state(event))

    def _resume_hydration(self) -> bool:
        """Start a reload requested during the save that just settled."""
        if not self._hydrate_after_save:
            return False
        self._hydrate_after_save = False
        self._coalesce = False
        self._cancel_timers()
        self._scheduler.spawn(self.hydrate())
        return True

    def _report(self, error: Exception) -> None:
        logger.warning("Records sync failed: %s", error)
        if self._on_error is not None:
            self._on_error(error)
