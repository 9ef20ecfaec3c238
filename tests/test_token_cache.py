"""
Provider token cache tests.

Run with: python -m pytest tests/test_token_cache.py -v
"""

import threading
import time

import pytest

from services.esign import ProviderTransientError, TokenCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class CountingFetcher:
    """Token endpoint stand-in issuing token-1, token-2, ..."""

    def __init__(self, expires_in=3600, delay=0.0):
        self.calls = 0
        self.expires_in = expires_in
        self.delay = delay
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
            n = self.calls
        if self.delay:
            time.sleep(self.delay)
        return f'token-{n}', self.expires_in


class TestTokenCache:

    def test_token_is_reused_until_expiry(self):
        clock = FakeClock()
        fetch = CountingFetcher(expires_in=3600)
        cache = TokenCache(fetch, expiry_skew=60, clock=clock)

        assert cache.get_token() == 'token-1'
        clock.now += 3500
        assert cache.get_token() == 'token-1'
        assert fetch.calls == 1

    def test_refreshes_inside_expiry_skew(self):
        """A token is refreshed expiry_skew seconds before the provider expiry."""
        clock = FakeClock()
        fetch = CountingFetcher(expires_in=3600)
        cache = TokenCache(fetch, expiry_skew=60, clock=clock)

        cache.get_token()
        clock.now += 3541
        assert cache.get_token() == 'token-2'
        assert cache.refresh_count == 2

    def test_invalidate_matching_token(self):
        fetch = CountingFetcher()
        cache = TokenCache(fetch)

        stale = cache.get_token()
        cache.invalidate(stale)

        assert cache.get_token() == 'token-2'

    def test_invalidate_ignores_already_replaced_token(self):
        """A late 401 for an old token must not throw away the fresh one."""
        fetch = CountingFetcher()
        cache = TokenCache(fetch)

        old = cache.get_token()
        cache.invalidate(old)
        fresh = cache.get_token()
        cache.invalidate(old)

        assert cache.get_token() == fresh
        assert fetch.calls == 2

    def test_concurrent_callers_share_one_refresh(self):
        fetch = CountingFetcher(delay=0.2)
        cache = TokenCache(fetch)
        tokens = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            tokens.append(cache.get_token())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert fetch.calls == 1
        assert tokens == ['token-1'] * 8

    def test_failed_refresh_propagates_and_can_be_retried(self):
        attempts = []

        def fetch():
            attempts.append(1)
            if len(attempts) == 1:
                raise ProviderTransientError('token endpoint timed out')
            return 'token-ok', 3600

        cache = TokenCache(fetch)

        with pytest.raises(ProviderTransientError):
            cache.get_token()
        assert cache.get_token() == 'token-ok'

    def test_waiters_see_failed_refresh(self):
        """Callers waiting on a failing refresh get its error instead of starting another."""
        started = threading.Event()
        release = threading.Event()
        calls = []

        def fetch():
            calls.append(1)
            started.set()
            release.wait(timeout=5)
            raise ProviderTransientError('token endpoint down')

        cache = TokenCache(fetch)
        errors = []

        def worker():
            try:
                cache.get_token()
            except ProviderTransientError as e:
                errors.append(e)

        first = threading.Thread(target=worker)
        first.start()
        started.wait(timeout=5)

        waiter = threading.Thread(target=worker)
        waiter.start()
        time.sleep(0.1)
        release.set()

        first.join(timeout=5)
        waiter.join(timeout=5)

        assert len(calls) == 1
        assert len(errors) == 2
