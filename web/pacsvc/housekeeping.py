from __future__ import annotations

import logging
import sqlite3
import threading
import time
from typing import Callable, Optional

from pacsvc.logutil import log_exception_throttled
from pacsvc.site_stat_store import SiteStatStore, get_site_stat_store


logger = logging.getLogger(__name__)


_started = False
_lock = threading.Lock()


def _is_db_locked(exc: BaseException) -> bool:
    return isinstance(exc, sqlite3.OperationalError) and "database is locked" in str(exc).lower()


def _run_with_db_lock_retry(fn: Callable[[], object], *, attempts: int = 8, base_sleep_seconds: float = 0.5) -> object:
    """Run `fn` with exponential backoff on transient SQLite lock errors."""
    last_exc: BaseException | None = None
    for i in range(max(1, int(attempts))):
        try:
            return fn()
        except Exception as exc:
            last_exc = exc
            if not _is_db_locked(exc):
                raise
            # Backoff: 0.5s, 1s, 2s, 4s, ... (capped)
            sleep_s = min(30.0, float(base_sleep_seconds) * (2 ** i))
            time.sleep(sleep_s)
    if last_exc is not None:
        raise last_exc
    return None


def run_once(*, retention_days: int, store: Optional[SiteStatStore] = None) -> int:
    st = store or get_site_stat_store()
    removed = _run_with_db_lock_retry(lambda: st.prune_old_entries(retention_days=retention_days, vacuum=True))
    logger.info("Pruned %s stale site entries", removed)
    return int(removed or 0)


def start_housekeeping(
    *,
    retention_days: int = 30,
    interval_seconds: int = 24 * 60 * 60,
    store: Optional[SiteStatStore] = None,
) -> None:
    """Start daily site-statistics housekeeping.

    Drops learned sites older than `retention_days` so domains that are no
    longer visited eventually leave the direct list.
    """
    global _started
    with _lock:
        if _started:
            return
        _started = True

    def loop() -> None:
        while True:
            try:
                run_once(retention_days=int(retention_days), store=store)
            except Exception:
                log_exception_throttled(
                    logger,
                    "housekeeping.loop",
                    interval_seconds=300,
                    message="Housekeeping run failed",
                )
            time.sleep(float(interval_seconds))

    t = threading.Thread(target=loop, name="sitestat-housekeeping", daemon=True)
    t.start()
