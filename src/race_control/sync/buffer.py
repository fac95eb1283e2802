"""Durable, race-scoped buffer of unsynced finish events.

Exactly one buffer exists per device. It belongs to a single race and its
runner numbers are unique. Switching to another race replaces the buffer
and discards any unsynced finishes of the previous race with a warning log.

Persisted under the ``race-control-data`` key as::

    {"schemaVersion": 1, "raceId": 12, "results": [{"runnerNumber": 5, "finishTime": 1700000005000}]}
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from race_control.errors import CorruptLocalState, DuplicateLocalEntryError
from race_control.sync.store import KeyValueStore

logger = logging.getLogger(__name__)

BUFFER_KEY = "race-control-data"
SCHEMA_VERSION = 1


@dataclass(frozen=True)
class FinishEvent:
    """A runner number paired with the instant they finished (epoch ms)."""

    runner_number: int
    finish_time: int

    def to_payload(self) -> dict[str, int]:
        return {"runnerNumber": self.runner_number, "finishTime": self.finish_time}


@dataclass(frozen=True)
class Buffer:
    """Immutable view of the buffer at one point in time."""

    race_id: int
    results: tuple[FinishEvent, ...]

    def __len__(self) -> int:
        return len(self.results)

    @property
    def runner_numbers(self) -> list[int]:
        return [event.runner_number for event in self.results]


class FinishRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    runner_number: int = Field(..., alias="runnerNumber", gt=0)
    finish_time: int = Field(..., alias="finishTime", ge=0)


class BufferRecord(BaseModel):
    """Versioned persisted form of the buffer.

    Records written before versioning carry no ``schemaVersion`` and have
    the version 1 shape, so a missing version is read as 1. Any other
    version is rejected instead of being guessed at.
    """

    model_config = ConfigDict(populate_by_name=True)

    schema_version: int = Field(SCHEMA_VERSION, alias="schemaVersion")
    race_id: int = Field(..., alias="raceId")
    results: list[FinishRecord] = Field(default_factory=list)

    @field_validator("schema_version")
    @classmethod
    def _known_version(cls, value: int) -> int:
        if value != SCHEMA_VERSION:
            raise ValueError(f"unsupported buffer schema version {value}")
        return value

    @field_validator("results")
    @classmethod
    def _unique_runners(cls, value: list[FinishRecord]) -> list[FinishRecord]:
        numbers = [record.runner_number for record in value]
        if len(numbers) != len(set(numbers)):
            raise ValueError("duplicate runner numbers in buffer")
        return value

    @classmethod
    def from_buffer(cls, buffer: Buffer) -> BufferRecord:
        return cls(
            schema_version=SCHEMA_VERSION,
            race_id=buffer.race_id,
            results=[
                FinishRecord(runner_number=e.runner_number, finish_time=e.finish_time)
                for e in buffer.results
            ],
        )

    def to_buffer(self) -> Buffer:
        return Buffer(
            race_id=self.race_id,
            results=tuple(FinishEvent(r.runner_number, r.finish_time) for r in self.results),
        )


def parse_buffer(raw: str) -> Buffer:
    """Parse a persisted buffer.

    Raises:
        CorruptLocalState: If the JSON is invalid or does not match the schema.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise CorruptLocalState(f"unparsable buffer: {exc}") from exc
    if not isinstance(data, dict):
        raise CorruptLocalState("buffer is not a JSON object")
    try:
        return BufferRecord.model_validate(data).to_buffer()
    except PydanticValidationError as exc:
        errors = "; ".join(
            f"{' -> '.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise CorruptLocalState(f"invalid buffer: {errors}") from exc


def serialize_buffer(buffer: Buffer) -> str:
    return json.dumps(BufferRecord.from_buffer(buffer).model_dump(by_alias=True))


class LocalBufferStore:
    """Single-writer store for the race-scoped finish buffer.

    All mutations go through this class and are serialised by a lock, so
    the connectivity watcher thread and the operator can share it.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self._lock = threading.RLock()

    # -- Persistence ------------------------------------------------------

    def _load(self) -> Optional[Buffer]:
        raw = self.store.get(BUFFER_KEY)
        if raw is None:
            return None
        try:
            return parse_buffer(raw)
        except CorruptLocalState as exc:
            logger.warning("Ignoring corrupt local buffer: %s", exc)
            return None

    def _save(self, buffer: Buffer) -> None:
        self.store.put(BUFFER_KEY, serialize_buffer(buffer))

    # -- Public API -------------------------------------------------------

    def put(self, event: FinishEvent, race_id: int) -> bool:
        """Append *event* to the buffer of *race_id*.

        Returns:
            True if appended, False if the runner number is already buffered.
        """
        with self._lock:
            buffer = self._load()
            if buffer is None or buffer.race_id != race_id:
                if buffer is not None and buffer.results:
                    logger.warning(
                        "Discarding %d unsynced result(s) of race %s for race %s",
                        len(buffer),
                        buffer.race_id,
                        race_id,
                    )
                buffer = Buffer(race_id=race_id, results=())

            if event.runner_number in buffer.runner_numbers:
                logger.warning("%s", DuplicateLocalEntryError(event.runner_number))
                return False

            self._save(Buffer(race_id=race_id, results=buffer.results + (event,)))
            return True

    def get_all(self, race_id: int) -> list[FinishEvent]:
        with self._lock:
            buffer = self._load()
            if buffer is None or buffer.race_id != race_id:
                return []
            return list(buffer.results)

    def snapshot(self) -> Optional[Buffer]:
        """Return the current buffer, or None when nothing is stored."""
        with self._lock:
            return self._load()

    def begin_race(self, race_id: int) -> None:
        """Scope the buffer to *race_id* as control of that race begins."""
        with self._lock:
            buffer = self._load()
            if buffer is not None and buffer.race_id == race_id:
                return
            if buffer is not None and buffer.results:
                logger.warning(
                    "Discarding %d unsynced result(s) of race %s for race %s",
                    len(buffer),
                    buffer.race_id,
                    race_id,
                )
            self._save(Buffer(race_id=race_id, results=()))

    def retain_unsynced(self, synced: Buffer) -> int:
        """Drop the events of a confirmed sync, keeping later appends.

        Returns:
            Number of events still pending afterwards.
        """
        with self._lock:
            current = self._load()
            if current is None or current.race_id != synced.race_id:
                return 0 if current is None else len(current)

            remaining = current.results[len(synced.results):]
            if current.results[:len(synced.results)] != synced.results:
                # Buffer was rewritten during the sync; keep only what the server has not seen.
                sent = set(synced.runner_numbers)
                remaining = tuple(e for e in current.results if e.runner_number not in sent)

            if remaining:
                self._save(Buffer(race_id=current.race_id, results=remaining))
            else:
                self.store.delete(BUFFER_KEY)
            return len(remaining)

    def clear(self) -> None:
        with self._lock:
            self.store.delete(BUFFER_KEY)

    def has_pending(self) -> bool:
        with self._lock:
            buffer = self._load()
            return buffer is not None and len(buffer) > 0
