"""Short-lived memory of recently applied approval clicks."""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from typing import Callable, Dict, Hashable


class ActionDeduplicator:
    """Remember settled action keys for a fixed window so repeats can be recognised.

    Only keys whose transition already reached Jira (applied or refused as a
    repeat) are recorded. A click still in flight leaves no trace here, so a
    duplicate arriving meanwhile goes to Jira and relies on its conflict
    response. Entries live only in this process; a restart forgets them.
    """

    def __init__(
        self,
        *,
        window: timedelta = timedelta(seconds=60),
        timer: Callable[[], float] | None = None,
    ) -> None:
        if window.total_seconds() <= 0:
            raise ValueError("Deduplication window must be greater than zero seconds.")
        self._window = window.total_seconds()
        self._timer = timer or time.monotonic
        self._lock = threading.Lock()
        self._settled: Dict[Hashable, float] = {}

    def seen(self, key: Hashable) -> bool:
        """Return True if *key* settled inside the window."""

        now = self._timer()
        with self._lock:
            self._prune(now)
            return key in self._settled

    def remember(self, key: Hashable) -> None:
        """Record *key* as settled; call only once the transition outcome is known."""

        now = self._timer()
        with self._lock:
            self._prune(now)
            self._settled.setdefault(key, now)

    def _prune(self, now: float) -> None:
        expired = [key for key, settled_at in self._settled.items() if now - settled_at >= self._window]
        for key in expired:
            del self._settled[key]
