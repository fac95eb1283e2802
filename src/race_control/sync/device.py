"""Per-installation device identity.

Provides:
- Generation of an opaque device identifier
- Persistence under the ``device-id`` key of the local store
- In-memory fallback when the store cannot be written
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional
from uuid import uuid4

from race_control.sync.store import KeyValueStore

logger = logging.getLogger(__name__)

DEVICE_ID_KEY = "device-id"


def generate_device_id() -> str:
    """Generate a new device identifier.

    Uses 122 random bits from UUID4; uniqueness is not negotiated with the
    server, so collisions are not detected.

    Returns:
        String of the form ``device_<32 hex chars>``
    """
    return f"device_{uuid4().hex}"


class DeviceIdentity:
    """Stable identifier distinguishing which device submitted results."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self._device_id: Optional[str] = None

    def get_or_create(self) -> str:
        """Load the persisted device id, generating and persisting it if absent.

        Returns:
            The same identifier for the lifetime of the installation
        """
        if self._device_id is not None:
            return self._device_id

        stored = self.store.get(DEVICE_ID_KEY)
        if stored and stored.strip():
            self._device_id = stored.strip()
            return self._device_id

        device_id = generate_device_id()
        try:
            self.store.put(DEVICE_ID_KEY, device_id)
            logger.debug("Persisted new device id %s", device_id)
        except (OSError, sqlite3.Error) as e:
            logger.warning("Failed to persist device id; using in-memory identity: %s", e)
        self._device_id = device_id
        return device_id
