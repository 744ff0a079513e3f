from __future__ import annotations

import threading
import time
from typing import Callable, Optional

DEFAULT_COOLDOWN_SECONDS = 3.0


class ScanDeduplicator:
    """Remember rejected scans so a camera re-reading the same code stays quiet.

    Rejections are collected in batches. The first rejection of a batch arms a
    single clear deadline ``cooldown_seconds`` later; when it passes the whole
    batch is forgotten at once. Recording more keys never moves the deadline.
    """

    def __init__(
        self,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._rejected: dict[str, float] = {}
        self._clear_at: Optional[float] = None
        self._lock = threading.Lock()

    def should_suppress(self, key: str) -> bool:
        with self._lock:
            self._expire()
            return key in self._rejected

    def record_rejection(self, key: str) -> None:
        with self._lock:
            self._expire()
            self._record(key)

    def check_and_record(self, key: str) -> bool:
        """Return True when ``key`` is already rejected, otherwise record it."""

        with self._lock:
            self._expire()
            if key in self._rejected:
                return True
            self._record(key)
            return False

    def discard(self, key: str) -> None:
        with self._lock:
            self._rejected.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._rejected.clear()
            self._clear_at = None

    @property
    def pending_clear(self) -> bool:
        with self._lock:
            self._expire()
            return self._clear_at is not None

    def first_seen(self, key: str) -> Optional[float]:
        with self._lock:
            self._expire()
            return self._rejected.get(key)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.should_suppress(key)

    def __len__(self) -> int:
        with self._lock:
            self._expire()
            return len(self._rejected)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _record(self, key: str) -> None:
        now = self._clock()
        self._rejected.setdefault(key, now)
        if self._clear_at is None:
            self._clear_at = now + self.cooldown_seconds

    def _expire(self) -> None:
        if self._clear_at is not None and self._clock() >= self._clear_at:
            self._rejected.clear()
            self._clear_at = None
