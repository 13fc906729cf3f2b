from __future__ import annotations

import os
import sqlite3
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

from pacsvc.host_classifier import HostClassifier, get_host_classifier


# Counters saturate here so old history cannot outweigh recent behaviour forever.
MAX_COUNT = 100
# A learned site that was ever blocked needs this many more direct successes.
DIRECT_DELTA = 15

USER_NONE = 0
USER_DIRECT = 1
USER_BLOCKED = 2


@dataclass(frozen=True)
class SiteStat:
    domain: str
    direct_cnt: int
    blocked_cnt: int
    user_spec: int
    first_seen: int
    last_seen: int

    @property
    def as_direct(self) -> bool:
        if self.user_spec == USER_DIRECT:
            return True
        if self.user_spec == USER_BLOCKED:
            return False
        if self.direct_cnt <= 0:
            return False
        return self.blocked_cnt == 0 or (self.direct_cnt - self.blocked_cnt) >= DIRECT_DELTA


def _now() -> int:
    return int(time.time())


def _normalize_domain(domain: str) -> Tuple[Optional[str], str]:
    d = (domain or "").strip().lower()
    if not d:
        return None, ""
    if " " in d or "/" in d or "\t" in d:
        return None, "Invalid domain."
    if d.startswith("."):
        d = d[1:]
    if not d:
        return None, "Invalid domain."
    return d, ""


class SiteStatStore:
    """Per-domain record of whether the proxy reached a site directly.

    Rows are keyed by HostClassifier.classify(host), the same reduction the
    PAC script applies, so whatever lands in get_direct_list() matches the
    lookups the browser performs.
    """

    def __init__(
        self,
        db_path: str = "/var/lib/direct-pac/sitestat.db",
        classifier: Optional[HostClassifier] = None,
    ):
        self.db_path = db_path
        self.classifier = classifier or get_host_classifier()

    def _connect(self) -> sqlite3.Connection:
        d = os.path.dirname(self.db_path)
        if d:
            os.makedirs(d, exist_ok=True)
        conn = sqlite3.connect(self.db_path, timeout=3)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    def init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sites (
                    domain TEXT PRIMARY KEY,
                    direct_cnt INTEGER NOT NULL DEFAULT 0,
                    blocked_cnt INTEGER NOT NULL DEFAULT 0,
                    user_spec INTEGER NOT NULL DEFAULT 0,
                    first_seen INTEGER NOT NULL,
                    last_seen INTEGER NOT NULL
                );
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_sites_last_seen ON sites(last_seen);")

    def record_visit(self, host: str, *, blocked: bool) -> str:
        """Record one proxied request outcome for `host`.

        Returns the domain key that was updated, or "" when the host needs no
        record (private addresses and single-label names are always direct).
        """
        domain = self.classifier.classify((host or "").strip().lower())
        if not domain:
            return ""
        self.init_db()
        now = _now()
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO sites(domain, direct_cnt, blocked_cnt, user_spec, first_seen, last_seen) "
                "VALUES(?,0,0,0,?,?)",
                (domain, now, now),
            )
            if blocked:
                conn.execute(
                    "UPDATE sites SET blocked_cnt=MIN(blocked_cnt+1, ?), direct_cnt=direct_cnt/2, last_seen=? "
                    "WHERE domain=?",
                    (MAX_COUNT, now, domain),
                )
            else:
                conn.execute(
                    "UPDATE sites SET direct_cnt=MIN(direct_cnt+1, ?), last_seen=? WHERE domain=?",
                    (MAX_COUNT, now, domain),
                )
        return domain

    def set_user_domain(self, domain: str, *, direct: bool) -> Tuple[bool, str]:
        d, err = _normalize_domain(domain)
        if d is None:
            return False, err or "Domain is required."
        self.init_db()
        spec = USER_DIRECT if direct else USER_BLOCKED
        now = _now()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO sites(domain, direct_cnt, blocked_cnt, user_spec, first_seen, last_seen) "
                "VALUES(?,0,0,?,?,?) "
                "ON CONFLICT(domain) DO UPDATE SET user_spec=excluded.user_spec",
                (d, spec, now, now),
            )
        return True, ""

    def load_user_list(self, path: str, *, direct: bool) -> int:
        """Load a user "direct" or "blocked" file: one domain per line, # comments."""
        if not path or not os.path.exists(path):
            return 0
        loaded = 0
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for ln in f:
                ln = ln.split("#", 1)[0].strip()
                if not ln:
                    continue
                ok, _ = self.set_user_domain(ln, direct=direct)
                if ok:
                    loaded += 1
        return loaded

    def get_site(self, domain: str) -> Optional[SiteStat]:
        self.init_db()
        with self._connect() as conn:
            row = conn.execute(
                "SELECT domain, direct_cnt, blocked_cnt, user_spec, first_seen, last_seen FROM sites WHERE domain=?",
                ((domain or "").strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        return SiteStat(
            domain=str(row["domain"]),
            direct_cnt=int(row["direct_cnt"] or 0),
            blocked_cnt=int(row["blocked_cnt"] or 0),
            user_spec=int(row["user_spec"] or 0),
            first_seen=int(row["first_seen"] or 0),
            last_seen=int(row["last_seen"] or 0),
        )

    def get_direct_list(self) -> List[str]:
        self.init_db()
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT domain FROM sites
                WHERE user_spec = ?
                   OR (user_spec = ? AND direct_cnt > 0 AND (blocked_cnt = 0 OR direct_cnt - blocked_cnt >= ?))
                ORDER BY domain ASC
                """,
                (USER_DIRECT, USER_NONE, DIRECT_DELTA),
            ).fetchall()
        return [str(r[0]) for r in rows]

    def prune_old_entries(self, *, retention_days: int = 30, vacuum: bool = False) -> int:
        """Forget learned sites not seen for `retention_days`; user entries stay."""
        days = max(1, int(retention_days))
        cutoff = _now() - days * 24 * 60 * 60
        self.init_db()
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM sites WHERE user_spec = ? AND last_seen < ?", (USER_NONE, cutoff))
            removed = int(cur.rowcount or 0)
        if vacuum:
            conn = self._connect()
            try:
                conn.execute("VACUUM;")
            finally:
                conn.close()
        return removed


_store: Optional[SiteStatStore] = None


def get_site_stat_store() -> SiteStatStore:
    global _store
    if _store is None:
        _store = SiteStatStore(
            (os.environ.get("SITESTAT_DB") or "/var/lib/direct-pac/sitestat.db").strip()
        )
        _store.init_db()
    return _store
