"""Race control session: the composition root.

Owns the timer, connectivity monitor, buffer store, device identity, API
client and sync coordinator, and exposes the operator actions of the race
control screen. Every ``RaceControlError`` is handled here: it becomes a
notification, is kept in ``last_error`` and the action returns ``None``
(or an empty/negative value), so nothing propagates to the caller.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date as date_cls
from typing import Any, Optional

from race_control.errors import (
    CorruptLocalState,
    DuplicateLocalEntryError,
    NotRunningError,
    OfflineError,
    RaceControlError,
    ValidationError,
)
from race_control.notify import Notifier
from race_control.sync.buffer import FinishEvent, LocalBufferStore
from race_control.sync.client import RaceApiClient
from race_control.sync.config import RaceControlConfig
from race_control.sync.connectivity import ConnectivityMonitor, http_probe
from race_control.sync.coordinator import SyncCoordinator, SyncOutcome, SyncStatus
from race_control.sync.device import DeviceIdentity
from race_control.sync.store import KeyValueStore, SqliteKeyValueStore
from race_control.timer import RaceTimer, TimerState, race_time

logger = logging.getLogger(__name__)

ACTIVE_RACE_KEY = "active-race"

RECORDED_DURATION_MS = 2000
CONFLICT_DURATION_MS = 5000


@dataclass
class ActiveRace:
    """Cached state of the race under control."""

    race_id: int
    status: str = "pending"  # "pending", "active", "completed"
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    name: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "raceId": self.race_id,
            "status": self.status,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActiveRace:
        try:
            start_time = data.get("startTime")
            end_time = data.get("endTime")
            return cls(
                race_id=int(data["raceId"]),
                status=str(data.get("status") or "pending"),
                start_time=int(start_time) if start_time is not None else None,
                end_time=int(end_time) if end_time is not None else None,
                name=data.get("name"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise CorruptLocalState(f"invalid active race record: {exc}") from exc


@dataclass(frozen=True)
class ResultRow:
    position: int
    runner_number: int
    finish_time: int
    race_time: Optional[int]


def parse_runner_number(value: Any) -> int:
    """Validate a runner number (positive integer, digits-only strings accepted)."""
    if isinstance(value, bool):
        raise ValidationError("Invalid runner number")
    if isinstance(value, str):
        text = value.strip()
        if not (text.isascii() and text.isdigit()):
            raise ValidationError("Invalid runner number")
        value = int(text)
    if not isinstance(value, int) or value <= 0:
        raise ValidationError("Invalid runner number")
    return value


class RaceSession:
    """Operator-facing race control actions."""

    def __init__(
        self,
        store: KeyValueStore,
        client: RaceApiClient,
        connectivity: ConnectivityMonitor,
        notifier: Optional[Notifier] = None,
        timer: Optional[RaceTimer] = None,
    ) -> None:
        self.store = store
        self.client = client
        self.connectivity = connectivity
        self.notifier = notifier or Notifier()
        self.timer = timer or RaceTimer()
        self.buffer = LocalBufferStore(store)
        self.identity = DeviceIdentity(store)
        self.coordinator = SyncCoordinator(
            buffer=self.buffer,
            client=client,
            connectivity=connectivity,
            identity=self.identity,
        )
        self.active_race: Optional[ActiveRace] = None
        self.last_error: Optional[RaceControlError] = None

    @classmethod
    def from_config(cls, config: Optional[RaceControlConfig] = None, notifier: Optional[Notifier] = None) -> RaceSession:
        """Wire a session from configuration and restore the cached race."""
        config = config or RaceControlConfig()
        server_url = config.get_server_url()
        session = cls(
            store=SqliteKeyValueStore(config.get_store_path()),
            client=RaceApiClient(server_url, timeout=config.get_timeout()),
            connectivity=ConnectivityMonitor(probe=http_probe(server_url)),
            notifier=notifier,
        )
        session.restore()
        return session

    # ── Error surfacing ───────────────────────────────────────────

    def _report(self, exc: RaceControlError) -> None:
        self.last_error = exc
        if isinstance(exc, DuplicateLocalEntryError):
            self.notifier.notify(str(exc), level="warning")
        else:
            self.notifier.notify(str(exc), level="error")

    def _require_online(self, action: str) -> None:
        if not self.connectivity.is_online():
            raise OfflineError(f"Cannot {action} while offline")

    def _require_race(self) -> ActiveRace:
        if self.active_race is None:
            raise ValidationError("No race selected")
        return self.active_race

    # ── Active race cache ─────────────────────────────────────────

    def _save_active_race(self) -> None:
        if self.active_race is None:
            self.store.delete(ACTIVE_RACE_KEY)
        else:
            self.store.put(ACTIVE_RACE_KEY, json.dumps(self.active_race.to_dict()))

    def restore(self) -> Optional[ActiveRace]:
        """Rebuild the timer from the cached active race (works offline)."""
        raw = self.store.get(ACTIVE_RACE_KEY)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise CorruptLocalState("active race record is not a JSON object")
            active = ActiveRace.from_dict(data)
        except (json.JSONDecodeError, CorruptLocalState) as exc:
            logger.warning("Ignoring corrupt active race record: %s", exc)
            return None

        self.active_race = active
        self._apply_to_timer(active)
        return active

    def _apply_to_timer(self, active: ActiveRace) -> None:
        self.timer.reset()
        if active.start_time is None or active.status == "pending":
            return
        self.timer.start(active.start_time)
        if active.status == "completed" or active.end_time is not None:
            self.timer.stop(active.end_time)

    # ── Races ─────────────────────────────────────────────────────

    def create_race(self, name: str, race_date: Optional[str] = None) -> Optional[dict[str, Any]]:
        self.last_error = None
        try:
            if not name.strip():
                raise ValidationError("Race name is required")
            self._require_online("create races")
            race = self.client.create_race(name.strip(), race_date or date_cls.today().isoformat())
        except RaceControlError as exc:
            self._report(exc)
            return None
        self.notifier.notify(f"Race '{name.strip()}' created", level="success")
        return race

    def list_races(self) -> list[dict[str, Any]]:
        self.last_error = None
        try:
            self._require_online("load races")
            return self.client.list_races()
        except RaceControlError as exc:
            self._report(exc)
            return []

    def delete_race(self, race_id: int) -> bool:
        self.last_error = None
        try:
            self._require_online("delete races")
            self.client.delete_race(race_id)
        except RaceControlError as exc:
            self._report(exc)
            return False

        if self.active_race is not None and self.active_race.race_id == race_id:
            self.active_race = None
            self.timer.reset()
            self._save_active_race()
        self.notifier.notify("Race deleted", level="success")
        return True

    def load_race(self, race_id: int) -> Optional[dict[str, Any]]:
        """Take control of *race_id*.

        Scopes the buffer to this race; unsynced results of a previously
        controlled race are discarded at this point.
        """
        self.last_error = None
        try:
            self._require_online("load race details")
            race = self.client.get_race(race_id)
        except RaceControlError as exc:
            self._report(exc)
            return None

        start_time = race.get("startTime")
        self.active_race = ActiveRace(
            race_id=race_id,
            status=str(race.get("status") or "pending"),
            start_time=int(start_time) if start_time is not None else None,
            name=race.get("name"),
        )
        self.buffer.begin_race(race_id)
        self._apply_to_timer(self.active_race)
        self._save_active_race()
        return race

    def start_race(self) -> Optional[int]:
        """Start the timer and tell the server; returns the start time."""
        self.last_error = None
        try:
            active = self._require_race()
            if active.status != "pending" or self.timer.state is not TimerState.IDLE:
                raise ValidationError("Race already started")
            self._require_online("start race")
            start_time = self.timer.start()
            try:
                updated = self.client.start_race(active.race_id, start_time)
            except RaceControlError:
                # Back to idle so the start can be retried.
                self.timer.reset()
                raise
        except RaceControlError as exc:
            self._report(exc)
            return None

        active.status = str(updated.get("status") or "active")
        active.start_time = start_time
        active.end_time = None
        self._save_active_race()
        self.notifier.notify("Race started", level="success")
        return start_time

    def end_race(self) -> bool:
        self.last_error = None
        try:
            active = self._require_race()
        except RaceControlError as exc:
            self._report(exc)
            return False

        self.timer.stop()
        active.end_time = self.timer.stop_time
        self._save_active_race()

        if not self.connectivity.is_online():
            self.notifier.notify("Race timer stopped")
            return True

        try:
            updated = self.client.end_race(active.race_id)
        except RaceControlError as exc:
            self._report(exc)
            return False

        active.status = str(updated.get("status") or "completed")
        self._save_active_race()
        self.notifier.notify("Race ended", level="success")
        return True

    # ── Finishes ──────────────────────────────────────────────────

    def record_finish(self, runner_number: Any) -> Optional[ResultRow]:
        """Record a finish for *runner_number* into the local buffer."""
        self.last_error = None
        try:
            active = self._require_race()
            number = parse_runner_number(runner_number)
            if self.timer.state is not TimerState.RUNNING:
                raise NotRunningError("Race timer not running")
            finish_time = self.timer.record_finish()
            elapsed = self.timer.race_time(finish_time)
            if not self.buffer.put(FinishEvent(number, finish_time), active.race_id):
                raise DuplicateLocalEntryError(number)
        except RaceControlError as exc:
            self._report(exc)
            return None

        self.notifier.notify(f"Runner {number} recorded", duration_ms=RECORDED_DURATION_MS, level="success")
        position = len(self.buffer.get_all(active.race_id))
        return ResultRow(position=position, runner_number=number, finish_time=finish_time, race_time=elapsed)

    def pending_results(self) -> list[ResultRow]:
        """Buffered finishes for the active race, ordered by finish time."""
        if self.active_race is None:
            return []
        events = sorted(self.buffer.get_all(self.active_race.race_id), key=lambda e: e.finish_time)
        start_time = self.active_race.start_time
        rows: list[ResultRow] = []
        for index, event in enumerate(events, start=1):
            elapsed: Optional[int] = None
            if start_time is not None:
                try:
                    elapsed = race_time(start_time, event.finish_time)
                except ValidationError as exc:
                    logger.warning("Runner %s: %s", event.runner_number, exc)
            rows.append(ResultRow(index, event.runner_number, event.finish_time, elapsed))
        return rows

    def clear_results(self) -> None:
        self.buffer.clear()
        self.notifier.notify("Results cleared")

    def race_results(self, race_id: int) -> list[ResultRow]:
        """Server-side results of *race_id*, ordered by race time."""
        self.last_error = None
        try:
            self._require_online("load results")
            results = self.client.get_results(race_id)
        except RaceControlError as exc:
            self._report(exc)
            return []

        def _sort_key(row: dict[str, Any]) -> float:
            value = row.get("raceTime")
            return float(value) if value is not None else float("inf")

        rows: list[ResultRow] = []
        for index, row in enumerate(sorted(results, key=_sort_key), start=1):
            value = row.get("raceTime")
            rows.append(
                ResultRow(
                    position=index,
                    runner_number=int(row["runnerNumber"]),
                    finish_time=int(row["finishTime"]),
                    race_time=int(value) if value is not None else None,
                )
            )
        return rows

    # ── Sync ──────────────────────────────────────────────────────

    def sync(self) -> SyncOutcome:
        """Run the sync coordinator and notify the operator of the outcome."""
        self.last_error = None
        outcome = self.coordinator.sync_now()
        if outcome.status is SyncStatus.SYNCED:
            self.notifier.notify(outcome.message, level="success")
        elif outcome.status is SyncStatus.CONFLICT:
            self.notifier.notify(outcome.message, duration_ms=CONFLICT_DURATION_MS, level="error")
        elif outcome.status in (SyncStatus.OFFLINE, SyncStatus.FAILED):
            self.notifier.notify(outcome.message, level="error")
        else:
            self.notifier.notify(outcome.message)
        return outcome

    def upload_results(self) -> SyncOutcome:
        """Upload buffered results; offline they simply stay buffered."""
        if not self.buffer.has_pending():
            self.notifier.notify("No results to upload")
            return SyncOutcome(SyncStatus.NOTHING_TO_SYNC)
        if not self.connectivity.is_online():
            self.notifier.notify("Results saved offline and will sync when online")
            return SyncOutcome(SyncStatus.OFFLINE)
        return self.sync()

    def status(self) -> dict[str, Any]:
        snapshot = self.buffer.snapshot()
        return {
            "online": self.connectivity.is_online(),
            "device_id": self.identity.get_or_create(),
            "race_id": self.active_race.race_id if self.active_race else None,
            "race_name": self.active_race.name if self.active_race else None,
            "timer_state": self.timer.state.value,
            "elapsed_ms": self.timer.elapsed(),
            "buffer_race_id": snapshot.race_id if snapshot else None,
            "pending": len(snapshot) if snapshot else 0,
        }
