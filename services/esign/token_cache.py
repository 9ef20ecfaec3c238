"""
Provider Access Token Cache

Process-wide cache for the Sadiq bearer token. Concurrent readers share one
token; when it is missing or stale exactly one caller refreshes it while the
others wait for that refresh instead of starting their own.
"""

import logging
import threading
import time
from typing import Callable, Optional, Tuple

logger = logging.getLogger(__name__)

# Refresh this many seconds before the provider-reported expiry
DEFAULT_EXPIRY_SKEW = 60


class TokenCache:
    """
    Single-flight token cache.

    Args:
        fetch_token: Callable returning (access_token, expires_in_seconds)
        expiry_skew: Seconds subtracted from expires_in
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        fetch_token: Callable[[], Tuple[str, int]],
        expiry_skew: int = DEFAULT_EXPIRY_SKEW,
        clock: Callable[[], float] = time.monotonic
    ):
        self._fetch_token = fetch_token
        self._expiry_skew = expiry_skew
        self._clock = clock
        self._cond = threading.Condition()
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._refreshing = False
        self._generation = 0
        self._last_error: Optional[BaseException] = None
        self.refresh_count = 0

    def _is_valid(self) -> bool:
        return self._token is not None and self._clock() < self._expires_at

    def get_token(self) -> str:
        """Return a valid token, refreshing it at most once across waiting callers."""
        with self._cond:
            while True:
                if self._is_valid():
                    return self._token
                if not self._refreshing:
                    self._refreshing = True
                    break
                generation = self._generation
                while self._refreshing:
                    self._cond.wait()
                if self._generation != generation and self._last_error is not None:
                    # The refresh we waited on failed; don't pile another one on it
                    raise self._last_error

        try:
            token, expires_in = self._fetch_token()
        except BaseException as e:
            with self._cond:
                self._refreshing = False
                self._generation += 1
                self._last_error = e
                self._cond.notify_all()
            raise

        with self._cond:
            self._token = token
            self._expires_at = self._clock() + max(int(expires_in or 0) - self._expiry_skew, 0)
            self._refreshing = False
            self._generation += 1
            self._last_error = None
            self.refresh_count += 1
            self._cond.notify_all()
            logger.info(f"Provider token refreshed (valid for {expires_in}s)")
            return token

    def invalidate(self, token: Optional[str] = None) -> None:
        """
        Drop the cached token.

        When ``token`` is given, only drop it if it is still the cached one,
        so a burst of 401s for the same stale token causes a single refresh.
        """
        with self._cond:
            if token is None or token == self._token:
                self._token = None
                self._expires_at = 0.0
