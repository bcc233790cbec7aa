"""Per-sender message throttle.

Applied to parsed messages while the webhook still answers 200, so the
platform never sees a 429 and never redelivers a throttled message.
"""

from __future__ import annotations

import time
from collections import deque

_EVICT_THRESHOLD = 1024


class SenderRateLimiter:
    """Sliding-window message budget per sender id.

    ``max_messages`` of 0 disables throttling.
    """

    def __init__(self, max_messages: int = 30, window_seconds: float = 60.0) -> None:
        self._max_messages = max_messages
        self._window = window_seconds
        self._windows: dict[str, deque[float]] = {}

    @property
    def enabled(self) -> bool:
        return self._max_messages > 0

    def allow(self, sender_id: str) -> bool:
        """Consume one message from ``sender_id``'s budget if any is left."""
        if not self.enabled:
            return True
        now = time.monotonic()
        window = self._windows.setdefault(sender_id, deque())
        while window and window[0] <= now - self._window:
            window.popleft()
        if len(window) >= self._max_messages:
            return False
        window.append(now)
        if len(self._windows) > _EVICT_THRESHOLD:
            self._evict_idle(now)
        return True

    def _evict_idle(self, now: float) -> None:
        idle = [
            sender for sender, window in self._windows.items()
            if not window or window[-1] <= now - self._window
        ]
        for sender in idle:
            del self._windows[sender]
