from __future__ import annotations

import logging
import threading
import time
from typing import Optional, Protocol, Sequence, Tuple

from pacsvc.logutil import log_exception_throttled
from pacsvc.rwlock import RWLock


logger = logging.getLogger(__name__)


DEFAULT_REFRESH_SECONDS = 60


class DirectListProvider(Protocol):
    def get_direct_list(self) -> Sequence[str]: ...


class DirectListStore:
    """Published snapshot of the domains that should bypass the proxy.

    The snapshot is an immutable tuple. `refresh()` builds the replacement
    without holding the lock and only swaps the reference under the write
    side, so request threads calling `snapshot()` never wait on the provider.
    """

    def __init__(self, provider: DirectListProvider):
        self.provider = provider
        self._rw = RWLock()
        self._snapshot: Tuple[str, ...] = ()
        self._version = 0
        self._refreshed_at = 0.0

        self._start_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def snapshot(self) -> Tuple[str, ...]:
        with self._rw.read_locked():
            return self._snapshot

    @property
    def version(self) -> int:
        with self._rw.read_locked():
            return self._version

    @property
    def refreshed_at(self) -> float:
        with self._rw.read_locked():
            return self._refreshed_at

    def state(self) -> Tuple[Tuple[str, ...], int, float]:
        """Snapshot, version and refresh time, read together under one lock."""
        with self._rw.read_locked():
            return self._snapshot, self._version, self._refreshed_at

    def refresh(self) -> Tuple[str, ...]:
        new = tuple(str(d) for d in self.provider.get_direct_list())
        with self._rw.write_locked():
            self._snapshot = new
            self._version += 1
            self._refreshed_at = time.time()
        logger.debug("Direct list refreshed: %d domains", len(new))
        return new

    def start(self, *, interval_seconds: float = DEFAULT_REFRESH_SECONDS) -> None:
        """Load the list now, then keep refreshing it in a daemon thread.

        The first refresh runs in the caller so that the first PAC served
        after start-up already carries the learned list. It is not wrapped:
        a provider failure here aborts start-up.
        """
        with self._start_lock:
            if self._thread is not None:
                return
            self._stop.clear()
            self.refresh()

            t = threading.Thread(
                target=self._loop,
                args=(float(interval_seconds),),
                name="direct-list-refresh",
                daemon=True,
            )
            self._thread = t
            t.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        with self._start_lock:
            t = self._thread
            self._thread = None
            self._stop.set()
        if t is not None and t is not threading.current_thread():
            t.join(timeout)

    @property
    def running(self) -> bool:
        t = self._thread
        return t is not None and t.is_alive()

    def _loop(self, interval_seconds: float) -> None:
        while not self._stop.wait(interval_seconds):
            try:
                self.refresh()
            except Exception:
                # Keep serving the previous snapshot.
                log_exception_throttled(
                    logger,
                    "direct_list.refresh",
                    interval_seconds=300,
                    message="Direct list refresh failed",
                )
