"""Sync coordinator: flush the local buffer to the remote authority.

Gated by the connectivity monitor, identified by the device id, and
limited to one sync in flight at a time. The buffer is only cleared on a
confirmed acceptance; conflicts and failures leave it intact for the
operator to reconcile and retry. No automatic retry is performed here:
retries are triggered by the operator or by a reconnect (see
``enable_auto_sync``).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from race_control.errors import ConflictError, TransportFailure
from race_control.sync.buffer import LocalBufferStore
from race_control.sync.client import RaceApiClient
from race_control.sync.connectivity import ConnectivityMonitor
from race_control.sync.device import DeviceIdentity

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    SYNCED = "synced"
    NOTHING_TO_SYNC = "nothing_to_sync"
    OFFLINE = "offline"
    CONFLICT = "conflict"
    FAILED = "failed"
    ALREADY_SYNCING = "already_syncing"


@dataclass(frozen=True)
class SyncOutcome:
    """Result of a single ``sync_now()`` call.

    Attributes:
        status: Outcome kind.
        count: Events accepted by the authority (``SYNCED`` only).
        duplicates: Runner numbers the authority already holds (``CONFLICT`` only).
        reason: Failure description (``FAILED`` only).
        race_id: Race the buffer belonged to, when there was one.
    """

    status: SyncStatus
    count: int = 0
    duplicates: tuple[int, ...] = ()
    reason: Optional[str] = None
    race_id: Optional[int] = None

    @classmethod
    def synced(cls, count: int, race_id: int) -> SyncOutcome:
        return cls(SyncStatus.SYNCED, count=count, race_id=race_id)

    @classmethod
    def conflict(cls, duplicates: list[int], race_id: int) -> SyncOutcome:
        return cls(SyncStatus.CONFLICT, duplicates=tuple(duplicates), race_id=race_id)

    @classmethod
    def failed(cls, reason: str, race_id: Optional[int] = None) -> SyncOutcome:
        return cls(SyncStatus.FAILED, reason=reason, race_id=race_id)

    @property
    def ok(self) -> bool:
        return self.status in (SyncStatus.SYNCED, SyncStatus.NOTHING_TO_SYNC)

    @property
    def message(self) -> str:
        """Operator notification text."""
        if self.status is SyncStatus.SYNCED:
            return "Results synchronized successfully"
        if self.status is SyncStatus.NOTHING_TO_SYNC:
            return "No data to synchronize"
        if self.status is SyncStatus.OFFLINE:
            return "Cannot sync while offline"
        if self.status is SyncStatus.CONFLICT:
            numbers = ", ".join(str(n) for n in self.duplicates)
            return f"Cannot sync. Runner numbers already recorded: {numbers}"
        if self.status is SyncStatus.ALREADY_SYNCING:
            return "Sync already in progress"
        return f"Failed to synchronize results: {self.reason or 'unknown error'}"


@dataclass
class SyncCoordinator:
    """Reconciles the local buffer with the remote authority."""

    buffer: LocalBufferStore
    client: RaceApiClient
    connectivity: ConnectivityMonitor
    identity: DeviceIdentity
    on_outcome: Optional[Callable[[SyncOutcome], None]] = None
    _in_flight: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _unsubscribe: Optional[Callable[[], None]] = field(default=None, init=False, repr=False)
    _last_outcome: Optional[SyncOutcome] = field(default=None, init=False, repr=False)

    @property
    def is_syncing(self) -> bool:
        return self._in_flight.locked()

    @property
    def last_outcome(self) -> Optional[SyncOutcome]:
        return self._last_outcome

    def sync_now(self) -> SyncOutcome:
        """Submit the buffered events once.

        A call made while another sync is outstanding is rejected with
        ``ALREADY_SYNCING`` rather than queued.
        """
        if not self._in_flight.acquire(blocking=False):
            logger.info("Sync already in flight; rejecting concurrent request")
            return SyncOutcome(SyncStatus.ALREADY_SYNCING)
        try:
            outcome = self._sync_once()
        finally:
            self._in_flight.release()

        self._last_outcome = outcome
        if self.on_outcome is not None:
            try:
                self.on_outcome(outcome)
            except Exception:
                logger.exception("Sync outcome handler failed")
        return outcome

    def enable_auto_sync(self) -> None:
        """Sync automatically on every offline->online transition."""
        if self._unsubscribe is None:
            self._unsubscribe = self.connectivity.subscribe(self._on_connectivity_change)

    def disable_auto_sync(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ── Internal ──────────────────────────────────────────────────

    def _on_connectivity_change(self, online: bool) -> None:
        if online and self.buffer.has_pending():
            logger.info("Back online with pending results; syncing")
            self.sync_now()

    def _sync_once(self) -> SyncOutcome:
        if not self.connectivity.is_online():
            return SyncOutcome(SyncStatus.OFFLINE)

        # The request body is fixed here; finishes recorded during the
        # round trip stay in the buffer for the next sync.
        snapshot = self.buffer.snapshot()
        if snapshot is None or len(snapshot) == 0:
            return SyncOutcome(SyncStatus.NOTHING_TO_SYNC)

        device_id = self.identity.get_or_create()
        logger.info("Syncing %d result(s) for race %s", len(snapshot), snapshot.race_id)

        try:
            self.client.submit_results(snapshot.race_id, snapshot.results, device_id)
        except ConflictError as exc:
            logger.warning("Sync conflict for race %s: %s", snapshot.race_id, exc.duplicates)
            return SyncOutcome.conflict(exc.duplicates, snapshot.race_id)
        except TransportFailure as exc:
            logger.warning("Sync failed for race %s: %s", snapshot.race_id, exc.reason)
            return SyncOutcome.failed(exc.reason, snapshot.race_id)

        remaining = self.buffer.retain_unsynced(snapshot)
        logger.info("Synced %d result(s); %d still pending", len(snapshot), remaining)
        return SyncOutcome.synced(len(snapshot), snapshot.race_id)
