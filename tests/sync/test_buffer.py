"""Tests for the race-scoped local buffer store.

Covers:
- put() ordering, duplicate rejection and race switching
- get_all() / has_pending() / clear()
- Persistence across store instances (reloads)
- Corrupt and unknown-version state treated as "no buffer"
- retain_unsynced() after a confirmed sync
"""

from __future__ import annotations

import json
import logging

import pytest

from race_control.errors import CorruptLocalState
from race_control.sync.buffer import (
    BUFFER_KEY,
    Buffer,
    FinishEvent,
    LocalBufferStore,
    parse_buffer,
    serialize_buffer,
)
from race_control.sync.store import MemoryKeyValueStore, SqliteKeyValueStore


class TestPut:
    """Test LocalBufferStore.put()."""

    def test_distinct_runners_append_in_order(self, buffer_store: LocalBufferStore):
        """N puts with distinct runner numbers give N events in insertion order."""
        numbers = [12, 3, 40, 7, 1]
        for i, number in enumerate(numbers):
            assert buffer_store.put(FinishEvent(number, 1_000 + i), race_id=1) is True

        events = buffer_store.get_all(1)
        assert len(events) == len(numbers)
        assert [e.runner_number for e in events] == numbers

    def test_duplicate_runner_rejected(self, buffer_store: LocalBufferStore):
        """Scenario: put runner 5 twice for the same race."""
        assert buffer_store.put(FinishEvent(5, 1_005_000), race_id=1) is True
        assert buffer_store.put(FinishEvent(5, 1_009_000), race_id=1) is False

        events = buffer_store.get_all(1)
        assert events == [FinishEvent(5, 1_005_000)]

    def test_duplicate_is_logged(self, buffer_store: LocalBufferStore, caplog):
        buffer_store.put(FinishEvent(5, 1), race_id=1)
        with caplog.at_level(logging.WARNING, logger="race_control.sync.buffer"):
            buffer_store.put(FinishEvent(5, 2), race_id=1)
        assert "Runner 5 already recorded" in caplog.text

    def test_different_race_discards_previous_buffer(self, buffer_store: LocalBufferStore, caplog):
        """Switching races starts a new buffer holding only the new event."""
        buffer_store.put(FinishEvent(1, 100), race_id=1)
        buffer_store.put(FinishEvent(2, 200), race_id=1)

        with caplog.at_level(logging.WARNING, logger="race_control.sync.buffer"):
            assert buffer_store.put(FinishEvent(1, 300), race_id=2) is True

        assert buffer_store.get_all(1) == []
        assert buffer_store.get_all(2) == [FinishEvent(1, 300)]
        assert "Discarding 2 unsynced" in caplog.text

    def test_same_runner_allowed_in_new_race(self, buffer_store: LocalBufferStore):
        buffer_store.put(FinishEvent(9, 100), race_id=1)
        assert buffer_store.put(FinishEvent(9, 200), race_id=2) is True


class TestReadAndClear:
    """Test get_all(), has_pending() and clear()."""

    def test_get_all_other_race_is_empty(self, buffer_store: LocalBufferStore):
        buffer_store.put(FinishEvent(1, 100), race_id=1)
        assert buffer_store.get_all(99) == []

    def test_empty_store(self, buffer_store: LocalBufferStore):
        assert buffer_store.get_all(1) == []
        assert buffer_store.has_pending() is False
        assert buffer_store.snapshot() is None

    def test_has_pending(self, buffer_store: LocalBufferStore):
        buffer_store.put(FinishEvent(1, 100), race_id=1)
        assert buffer_store.has_pending() is True

    def test_clear_is_idempotent(self, buffer_store: LocalBufferStore):
        buffer_store.put(FinishEvent(1, 100), race_id=1)
        buffer_store.clear()
        buffer_store.clear()
        assert buffer_store.has_pending() is False
        assert buffer_store.get_all(1) == []
        assert buffer_store.store.get(BUFFER_KEY) is None


class TestBeginRace:
    """Test begin_race() scoping."""

    def test_begin_same_race_keeps_events(self, buffer_store: LocalBufferStore):
        buffer_store.put(FinishEvent(1, 100), race_id=1)
        buffer_store.begin_race(1)
        assert buffer_store.get_all(1) == [FinishEvent(1, 100)]

    def test_begin_other_race_resets(self, buffer_store: LocalBufferStore):
        buffer_store.put(FinishEvent(1, 100), race_id=1)
        buffer_store.begin_race(2)
        assert buffer_store.get_all(1) == []
        snapshot = buffer_store.snapshot()
        assert snapshot is not None
        assert snapshot.race_id == 2
        assert len(snapshot) == 0
        assert buffer_store.has_pending() is False


class TestPersistence:
    """Buffer survives reloads and tolerates corrupt state."""

    def test_survives_reload(self, tmp_path):
        db_path = tmp_path / "store.db"
        LocalBufferStore(SqliteKeyValueStore(db_path)).put(FinishEvent(7, 1_007_000), race_id=3)

        reloaded = LocalBufferStore(SqliteKeyValueStore(db_path))
        assert reloaded.get_all(3) == [FinishEvent(7, 1_007_000)]

    def test_persisted_format(self, buffer_store: LocalBufferStore):
        buffer_store.put(FinishEvent(7, 1_007_000), race_id=3)
        data = json.loads(buffer_store.store.get(BUFFER_KEY))
        assert data == {
            "schemaVersion": 1,
            "raceId": 3,
            "results": [{"runnerNumber": 7, "finishTime": 1_007_000}],
        }

    def test_legacy_record_without_version(self):
        store = MemoryKeyValueStore(
            {BUFFER_KEY: json.dumps({"raceId": 4, "results": [{"runnerNumber": 1, "finishTime": 10}]})}
        )
        assert LocalBufferStore(store).get_all(4) == [FinishEvent(1, 10)]

    @pytest.mark.parametrize(
        "raw",
        [
            "not json at all",
            "[1, 2, 3]",
            json.dumps({"results": []}),
            json.dumps({"raceId": 1, "results": [{"runnerNumber": -3, "finishTime": 1}]}),
            json.dumps({"schemaVersion": 99, "raceId": 1, "results": []}),
            json.dumps(
                {
                    "raceId": 1,
                    "results": [
                        {"runnerNumber": 2, "finishTime": 1},
                        {"runnerNumber": 2, "finishTime": 2},
                    ],
                }
            ),
        ],
    )
    def test_corrupt_state_is_no_buffer(self, raw: str):
        buffer_store = LocalBufferStore(MemoryKeyValueStore({BUFFER_KEY: raw}))
        assert buffer_store.snapshot() is None
        assert buffer_store.has_pending() is False
        assert buffer_store.get_all(1) == []

    def test_corrupt_state_replaced_on_put(self):
        buffer_store = LocalBufferStore(MemoryKeyValueStore({BUFFER_KEY: "{broken"}))
        assert buffer_store.put(FinishEvent(1, 10), race_id=1) is True
        assert buffer_store.get_all(1) == [FinishEvent(1, 10)]

    def test_parse_buffer_raises_corrupt_local_state(self):
        with pytest.raises(CorruptLocalState):
            parse_buffer("{broken")

    def test_serialize_round_trip(self):
        buffer = Buffer(race_id=8, results=(FinishEvent(1, 10), FinishEvent(2, 20)))
        assert parse_buffer(serialize_buffer(buffer)) == buffer


class TestRetainUnsynced:
    """Test retain_unsynced() after a confirmed sync."""

    def test_removes_everything_when_unchanged(self, buffer_store: LocalBufferStore, fill):
        fill(buffer_store, 1, 1, 2)
        snapshot = buffer_store.snapshot()

        assert buffer_store.retain_unsynced(snapshot) == 0
        assert buffer_store.has_pending() is False
        assert buffer_store.store.get(BUFFER_KEY) is None

    def test_keeps_events_appended_after_snapshot(self, buffer_store: LocalBufferStore, fill):
        fill(buffer_store, 1, 1, 2)
        snapshot = buffer_store.snapshot()
        buffer_store.put(FinishEvent(3, 5_000_000), race_id=1)

        assert buffer_store.retain_unsynced(snapshot) == 1
        assert buffer_store.get_all(1) == [FinishEvent(3, 5_000_000)]

    def test_other_race_untouched(self, buffer_store: LocalBufferStore, fill):
        fill(buffer_store, 1, 1, 2)
        snapshot = buffer_store.snapshot()
        buffer_store.put(FinishEvent(9, 10), race_id=2)

        assert buffer_store.retain_unsynced(snapshot) == 1
        assert buffer_store.get_all(2) == [FinishEvent(9, 10)]

    def test_rewritten_buffer_drops_only_sent_runners(self, buffer_store: LocalBufferStore, fill):
        fill(buffer_store, 1, 1, 2)
        snapshot = buffer_store.snapshot()
        buffer_store.clear()
        fill(buffer_store, 1, 2, 4)

        assert buffer_store.retain_unsynced(snapshot) == 1
        assert [e.runner_number for e in buffer_store.get_all(1)] == [4]
