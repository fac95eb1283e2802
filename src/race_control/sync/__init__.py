"""
Offline-first sync module for race-control.

Keeps finish events safe on the device and reconciles them with the
race-management server:
- Key/value persistence for device-local state
- Race-scoped buffer of unsynced finish events
- Stable per-installation device identity
- Connectivity monitoring with transition events
- Sync coordinator with duplicate (conflict) detection

Network-bound names (requests, httpx) are lazily imported via __getattr__
so that ``from race_control.sync.buffer import ...`` stays lightweight.
"""

from .buffer import Buffer, FinishEvent, LocalBufferStore
from .device import DeviceIdentity, generate_device_id
from .store import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore

# Lazy-loaded names (require 'requests' or 'httpx' at runtime)
_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "RaceApiClient": (".client", "RaceApiClient"),
    "ConnectivityMonitor": (".connectivity", "ConnectivityMonitor"),
    "ConnectivityWatcher": (".connectivity", "ConnectivityWatcher"),
    "http_probe": (".connectivity", "http_probe"),
    "SyncCoordinator": (".coordinator", "SyncCoordinator"),
    "SyncOutcome": (".coordinator", "SyncOutcome"),
    "SyncStatus": (".coordinator", "SyncStatus"),
    "RaceControlConfig": (".config", "RaceControlConfig"),
}


def __getattr__(name: str):
    if name in _LAZY_IMPORTS:
        module_path, attr = _LAZY_IMPORTS[name]
        import importlib

        mod = importlib.import_module(module_path, __name__)
        return getattr(mod, attr)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "Buffer",
    "FinishEvent",
    "LocalBufferStore",
    "DeviceIdentity",
    "generate_device_id",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "RaceApiClient",
    "ConnectivityMonitor",
    "ConnectivityWatcher",
    "http_probe",
    "SyncCoordinator",
    "SyncOutcome",
    "SyncStatus",
    "RaceControlConfig",
]
