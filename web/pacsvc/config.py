from __future__ import annotations

import os
from dataclasses import dataclass


def _env_str(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _env_int(name: str, default: int, *, minimum: int = 0) -> int:
    try:
        v = int(_env_str(name, str(default)) or str(default))
    except ValueError:
        return default
    if v < minimum:
        return default
    return v


@dataclass(frozen=True)
class PacConfig:
    # Advertised proxy address; empty means derive it from the client's socket.
    addr_in_pac: str
    proxy_port: str
    listen_host: str
    listen_port: int
    server_id: str
    sitestat_db: str
    direct_file: str
    blocked_file: str
    refresh_seconds: int
    retention_days: int
    disable_background: bool
    log_level: str


def load_config() -> PacConfig:
    return PacConfig(
        addr_in_pac=_env_str("PAC_PROXY_ADDR"),
        proxy_port=str(_env_int("PROXY_PORT", 7777, minimum=1)),
        listen_host=_env_str("PAC_HTTP_HOST", "0.0.0.0"),
        listen_port=_env_int("PAC_HTTP_PORT", 7778),
        server_id=_env_str("PAC_SERVER_ID", "cow-proxy"),
        sitestat_db=_env_str("SITESTAT_DB", "/var/lib/direct-pac/sitestat.db"),
        direct_file=_env_str("PAC_DIRECT_FILE"),
        blocked_file=_env_str("PAC_BLOCKED_FILE"),
        refresh_seconds=_env_int("DIRECT_LIST_REFRESH_SECONDS", 60, minimum=1),
        retention_days=_env_int("SITESTAT_RETENTION_DAYS", 30, minimum=1),
        disable_background=_env_str("DISABLE_BACKGROUND") == "1",
        log_level=_env_str("LOG_LEVEL", "INFO"),
    )
