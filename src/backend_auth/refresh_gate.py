"""Rate limiting for forced JWKS refreshes.

A token carrying an unknown ``kid`` makes the key provider refetch the
issuer's JWKS document. Without a gate, a stream of tokens with random kids
turns every request into an outbound fetch. RefreshGate lets one forced
refresh through per interval and logs a warning once denials pile up.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Final

logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL: Final[float] = 60.0
DEFAULT_ALERT_THRESHOLD: Final[int] = 40


class RefreshGate:
    """One forced refresh per ``min_interval`` seconds, shared by all threads.

    Denied calls are counted until the next allowed one; the count reaching
    ``alert_threshold`` is logged once.
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        alert_threshold: int = DEFAULT_ALERT_THRESHOLD,
    ) -> None:
        if min_interval <= 0:
            raise ValueError(f"min_interval must be positive, got {min_interval}")
        if alert_threshold < 1:
            raise ValueError(f"alert_threshold must be at least 1, got {alert_threshold}")

        self._interval = min_interval
        self._threshold = alert_threshold
        self._mutex = threading.Lock()
        self._closed_until = 0.0
        self._denied = 0

    @property
    def denied_attempts(self) -> int:
        with self._mutex:
            return self._denied

    def allow(self) -> bool:
        """True if a refresh may run now; starts a new interval when it does."""
        now = time.time()

        with self._mutex:
            if now >= self._closed_until:
                self._closed_until = now + self._interval
                self._denied = 0
                return True

            self._denied += 1
            denied = self._denied

        if denied == self._threshold:
            logger.warning(
                "JWKS refresh throttled: %d denials within %.0fs", denied, self._interval
            )
        return False
