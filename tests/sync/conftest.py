"""Shared fixtures for sync module tests."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from race_control.sync.buffer import FinishEvent, LocalBufferStore
from race_control.sync.client import RaceApiClient
from race_control.sync.connectivity import ConnectivityMonitor
from race_control.sync.coordinator import SyncCoordinator
from race_control.sync.device import DeviceIdentity
from race_control.sync.store import MemoryKeyValueStore, SqliteKeyValueStore


@pytest.fixture
def memory_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def sqlite_store(tmp_path: Path) -> SqliteKeyValueStore:
    """Temporary SQLite store for testing."""
    return SqliteKeyValueStore(db_path=tmp_path / "store.db")


@pytest.fixture
def buffer_store(sqlite_store: SqliteKeyValueStore) -> LocalBufferStore:
    return LocalBufferStore(sqlite_store)


@pytest.fixture
def online() -> ConnectivityMonitor:
    return ConnectivityMonitor(online=True)


@pytest.fixture
def mock_client() -> MagicMock:
    """Mock RaceApiClient that accepts every submission."""
    client = MagicMock(spec=RaceApiClient)
    client.submit_results.return_value = None
    return client


@pytest.fixture
def identity(sqlite_store: SqliteKeyValueStore) -> DeviceIdentity:
    return DeviceIdentity(sqlite_store)


@pytest.fixture
def coordinator(
    buffer_store: LocalBufferStore,
    mock_client: MagicMock,
    online: ConnectivityMonitor,
    identity: DeviceIdentity,
) -> SyncCoordinator:
    """SyncCoordinator wired to a real buffer and a mock client."""
    return SyncCoordinator(
        buffer=buffer_store,
        client=mock_client,
        connectivity=online,
        identity=identity,
    )


@pytest.fixture
def fill():
    """Append one event per runner number, one second apart."""

    def _fill(buffer: LocalBufferStore, race_id: int, *runner_numbers: int) -> None:
        for offset, number in enumerate(runner_numbers):
            assert buffer.put(FinishEvent(number, 1_000_000 + offset * 1000), race_id) is True

    return _fill
