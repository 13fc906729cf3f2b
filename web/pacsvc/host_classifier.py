"""Host to domain reduction shared by the site statistics and the PAC script.

The same rules run in two places: here, when the proxy records which domains
are reachable directly, and in the generated PAC script, when the browser
decides whether to bypass the proxy. Both sides must agree, so any change to
`classify` has to be mirrored in `pac_renderer.PAC_TEMPLATE`.
"""

from __future__ import annotations

from typing import AbstractSet, Iterable, Tuple


# Second-level labels that, together with a country code, form a public
# suffix ("co" in "example.co.uk"). A hostname whose second-to-last label is
# listed keeps one extra label when reduced. This is a deliberately small,
# fixed table and not a public suffix list.
TOP_LEVEL_DOMAINS: frozenset = frozenset(
    [
        "ac",
        "co",
        "com",
        "edu",
        "gov",
        "net",
        "org",
    ]
)

DIRECT = "DIRECT"


def _octet(part: str) -> int:
    if not part or len(part) > 3 or not (part.isascii() and part.isdigit()):
        return -1
    n = int(part)
    return n if n <= 255 else -1


def host_is_ip(host: str) -> Tuple[bool, bool]:
    """Return (is_ip, is_private) for a dotted-decimal IPv4 host.

    Anything that is not exactly four numeric octets is reported as
    (False, False); IPv6 literals are not recognised.
    """
    parts = (host or "").split(".")
    if len(parts) != 4:
        return False, False
    octets = [_octet(p) for p in parts]
    if any(o < 0 for o in octets):
        return False, False
    # Octets compare as numbers: "010.0.0.1" is private, like "10.0.0.1".
    if octets[0] in (10, 127) or (octets[0] == 192 and octets[1] == 168):
        return True, True
    if octets[0] == 172 and 16 <= octets[1] <= 31:
        return True, True
    return True, False


def classify(host: str, top_level: AbstractSet[str] = TOP_LEVEL_DOMAINS) -> str:
    """Reduce `host` to the key used by the direct list.

    Private IPv4 and single-label hosts give "" (always direct), a public
    IPv4 is its own key, and a hostname is cut down to an approximate
    registrable domain: "www.example.com" -> "example.com",
    "www.example.co.uk" -> "example.co.uk".
    """
    host = host or ""
    is_ip, is_private = host_is_ip(host)
    if is_private:
        return ""
    if is_ip:
        return host

    last_dot = host.rfind(".")
    if last_dot == -1:
        return ""
    dot_2nd_last = host.rfind(".", 0, last_dot)
    if dot_2nd_last == -1:
        return host

    label = host[dot_2nd_last + 1 : last_dot]
    if label in top_level or host[dot_2nd_last + 1 :] in top_level:
        dot_3rd_last = host.rfind(".", 0, dot_2nd_last)
        if dot_3rd_last == -1:
            return host
        return host[dot_3rd_last + 1 :]
    return host[dot_2nd_last + 1 :]


def should_bypass(
    url: str,
    host: str,
    direct: AbstractSet[str],
    top_level: AbstractSet[str] = TOP_LEVEL_DOMAINS,
) -> bool:
    """Decide whether a request for `host` goes DIRECT, as the PAC script does."""
    url = url or ""
    host = host or ""
    if url[:4] == "ftp:":
        return True
    if host[:7] == "::ffff:":
        return True
    if host.endswith(".local"):
        return True
    domain = classify(host, top_level)

    def listed(key: str) -> bool:
        # The script seeds its list with "", so private and single-label hosts match.
        return key == "" or key in direct

    if len(host) == len(domain):
        return listed(host)
    return listed(host) or listed(domain)


def find_proxy_for_url(
    url: str,
    host: str,
    direct: AbstractSet[str],
    proxy_addr: str,
    top_level: AbstractSet[str] = TOP_LEVEL_DOMAINS,
) -> str:
    if should_bypass(url, host, direct, top_level):
        return DIRECT
    return f"PROXY {proxy_addr}; DIRECT"


class HostClassifier:
    """Classifier bound to one top-level table.

    The table is frozen at construction and never changes afterwards, so a
    single instance can be shared across threads without locking.
    """

    def __init__(self, top_level: Iterable[str] = TOP_LEVEL_DOMAINS):
        self.top_level = frozenset(s.strip().lower() for s in top_level if s and s.strip())

    def host_is_ip(self, host: str) -> Tuple[bool, bool]:
        return host_is_ip(host)

    def classify(self, host: str) -> str:
        return classify(host, self.top_level)

    def should_bypass(self, url: str, host: str, direct: AbstractSet[str]) -> bool:
        return should_bypass(url, host, direct, self.top_level)

    def find_proxy_for_url(self, url: str, host: str, direct: AbstractSet[str], proxy_addr: str) -> str:
        return find_proxy_for_url(url, host, direct, proxy_addr, self.top_level)


_default: HostClassifier = HostClassifier()


def get_host_classifier() -> HostClassifier:
    return _default
