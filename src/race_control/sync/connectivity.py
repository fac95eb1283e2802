"""Connectivity monitoring.

``ConnectivityMonitor`` holds the process-wide online flag and notifies
subscribers on transitions. Platform signals reach it through adapters:
``http_probe`` checks whether the remote authority answers, and
``ConnectivityWatcher`` polls a probe on a daemon timer thread.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx

logger = logging.getLogger(__name__)

Probe = Callable[[], bool]
Subscriber = Callable[[bool], None]


def http_probe(url: str, timeout: float = 3.0) -> Probe:
    """Build a probe that reports online when *url* answers at all.

    Any HTTP response counts as online (even 404 or 500): the network path
    works. Only transport errors count as offline.
    """

    def probe() -> bool:
        try:
            httpx.head(url, timeout=timeout)
        except httpx.HTTPError as exc:
            logger.debug("Connectivity probe failed for %s: %s", url, exc)
            return False
        return True

    return probe


class ConnectivityMonitor:
    """Boolean online state with transition notifications."""

    def __init__(self, probe: Optional[Probe] = None, online: Optional[bool] = None) -> None:
        """
        Initialize the monitor.

        Args:
            probe: Platform probe used to read the initial state
            online: Explicit initial state; takes precedence over *probe*
        """
        if online is None:
            online = probe() if probe is not None else True
        self._online = bool(online)
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback* for online/offline transitions.

        Returns:
            A function that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def set_online(self, online: bool) -> None:
        """Adapter entry point for platform connectivity signals."""
        online = bool(online)
        with self._lock:
            if online == self._online:
                return
            self._online = online
            subscribers = list(self._subscribers)

        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for callback in subscribers:
            try:
                callback(online)
            except Exception:
                logger.exception("Connectivity subscriber failed")


@dataclass
class ConnectivityWatcher:
    """Polls a probe periodically and feeds the monitor."""

    monitor: ConnectivityMonitor
    probe: Probe
    interval_seconds: float = 5.0
    _timer: Optional[threading.Timer] = field(default=None, init=False, repr=False)
    _running: bool = field(default=False, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start polling (idempotent)."""
        with self._lock:
            if self._running:
                return
            self._running = True
        self._schedule_next_check()
        logger.debug("Connectivity watcher started (interval=%ss)", self.interval_seconds)

    def stop(self) -> None:
        """Stop polling; safe to call multiple times."""
        with self._lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        logger.debug("Connectivity watcher stopped")

    def check_now(self) -> bool:
        """Probe once and update the monitor."""
        online = self.probe()
        self.monitor.set_online(online)
        return online

    # ── Internal ──────────────────────────────────────────────────

    def _schedule_next_check(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._timer = threading.Timer(self.interval_seconds, self._on_timer)
            self._timer.daemon = True  # Don't block CLI exit
            self._timer.start()

    def _on_timer(self) -> None:
        if not self._running:
            return
        try:
            self.check_now()
        except Exception:
            logger.exception("Connectivity check failed")
        self._schedule_next_check()
