"""
Small in-process caching helpers for the shop server.

DataCache is a TTL map used for the heavier read endpoints (product analytics,
storage estimates). RequestBatcher lets concurrent requests for the same key
share one in-flight computation. debounce/throttle wrap callables that should
not fire on every call (e.g. cache invalidation bursts during bulk uploads).
"""
import functools
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple


class DataCache:
    """Thread-safe key/value cache with per-entry expiry (seconds)."""

    def __init__(self, default_ttl: float = 60.0):
        self.default_ttl = default_ttl
        self._items: Dict[str, Tuple[Any, float, float]] = {}
        self._lock = threading.Lock()

    def set(self, key: str, data: Any, expires_in: Optional[float] = None) -> None:
        ttl = self.default_ttl if expires_in is None else float(expires_in)
        with self._lock:
            self._items[key] = (data, time.monotonic(), ttl)

    def _live_entry_locked(self, key: str):
        entry = self._items.get(key)
        if entry is None:
            return None
        _, stored_at, ttl = entry
        if time.monotonic() - stored_at > ttl:
            self._items.pop(key, None)
            return None
        return entry

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._live_entry_locked(key)
        return entry[0] if entry else None

    def has(self, key: str) -> bool:
        with self._lock:
            return self._live_entry_locked(key) is not None

    def clear(self, key_pattern: Optional[str] = None) -> int:
        """Drop everything, or only keys containing ``key_pattern``. Returns count removed."""
        with self._lock:
            if not key_pattern:
                removed = len(self._items)
                self._items.clear()
                return removed
            targets = [k for k in self._items if key_pattern in k]
            for k in targets:
                self._items.pop(k, None)
            return len(targets)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class _Pending:
    __slots__ = ('event', 'result', 'error')

    def __init__(self):
        self.event = threading.Event()
        self.result = None
        self.error: Optional[BaseException] = None


class RequestBatcher:
    """Coalesce concurrent calls that share a key into a single fetcher call."""

    def __init__(self):
        self._pending: Dict[str, _Pending] = {}
        self._lock = threading.Lock()

    def batch(self, key: str, fetcher: Callable[[], Any]) -> Any:
        with self._lock:
            pending = self._pending.get(key)
            owner = pending is None
            if owner:
                pending = _Pending()
                self._pending[key] = pending
        if not owner:
            pending.event.wait()
            if pending.error is not None:
                raise pending.error
            return pending.result
        try:
            pending.result = fetcher()
            return pending.result
        except BaseException as exc:
            pending.error = exc
            raise
        finally:
            with self._lock:
                self._pending.pop(key, None)
            pending.event.set()

    def in_flight(self) -> int:
        with self._lock:
            return len(self._pending)


def cached_call(cache: DataCache, key: str, fetcher: Callable[[], Any],
                ttl: Optional[float] = None, batcher: Optional[RequestBatcher] = None) -> Any:
    """Return the cached value for ``key`` or compute, store and return it."""
    hit = cache.get(key)
    if hit is not None:
        return hit
    if batcher is not None:
        value = batcher.batch(key, fetcher)
    else:
        value = fetcher()
    cache.set(key, value, ttl)
    return value


def debounce(wait: float):
    """Delay calls until ``wait`` seconds pass without another call; only the last one runs."""
    def decorator(func):
        lock = threading.Lock()
        state = {'timer': None}

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with lock:
                if state['timer'] is not None:
                    state['timer'].cancel()
                timer = threading.Timer(wait, func, args=args, kwargs=kwargs)
                timer.daemon = True
                state['timer'] = timer
                timer.start()

        def cancel():
            with lock:
                if state['timer'] is not None:
                    state['timer'].cancel()
                    state['timer'] = None

        wrapper.cancel = cancel
        return wrapper
    return decorator


def throttle(limit: float):
    """Run at most once per ``limit`` seconds; calls inside the window are dropped."""
    def decorator(func):
        lock = threading.Lock()
        state = {'last': None}

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            now = time.monotonic()
            with lock:
                last = state['last']
                if last is not None and now - last < limit:
                    return None
                state['last'] = now
            return func(*args, **kwargs)
        return wrapper
    return decorator
