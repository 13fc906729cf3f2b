from __future__ import annotations

import logging
from typing import Protocol, Tuple

from pacsvc.direct_list import DirectListStore
from pacsvc.errors import AddressDerivationError
from pacsvc.pac_renderer import PacRenderer


logger = logging.getLogger(__name__)


class ConnectionContext(Protocol):
    """What the PAC service needs from the connection that asked for the PAC."""

    # Advertised "host:port" for the PAC; empty to derive from local_addr().
    addr_in_pac: str
    # Port the proxy listens on, paired with the local host when deriving.
    proxy_port: str

    def local_addr(self) -> str: ...

    def remote_addr(self) -> str: ...

    def write(self, data: bytes) -> int: ...


def split_host_port(hostport: str) -> Tuple[str, str]:
    """Split "host:port" or "[v6]:port" the way socket address strings are formed."""
    s = hostport or ""
    if s.startswith("["):
        end = s.find("]")
        if end == -1 or s[end + 1 : end + 2] != ":":
            raise ValueError(f"missing port in address {s!r}")
        host, port = s[1:end], s[end + 2 :]
    else:
        host, sep, port = s.rpartition(":")
        if not sep:
            raise ValueError(f"missing port in address {s!r}")
        if ":" in host:
            raise ValueError(f"too many colons in address {s!r}")
    if "[" in port or "]" in port or not port:
        raise ValueError(f"invalid port in address {s!r}")
    return host, port


def join_host_port(host: str, port: str) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def derive_proxy_addr(ctx: ConnectionContext) -> str:
    """The proxy address to embed in the PAC served over `ctx`.

    The configured address wins. Otherwise the host the client reached us on
    is paired with the proxy port, so a client on another interface gets an
    address it can actually connect to.
    """
    if ctx.addr_in_pac:
        return ctx.addr_in_pac
    local = ctx.local_addr()
    try:
        host, _ = split_host_port(local)
    except ValueError as e:
        raise AddressDerivationError(f"split host port on local address {local!r}: {e}") from e
    return join_host_port(host, str(ctx.proxy_port))


class PacService:
    def __init__(self, direct_list: DirectListStore, renderer: PacRenderer):
        self.direct_list = direct_list
        self.renderer = renderer

    def generate(self, ctx: ConnectionContext) -> bytes:
        # A fresh document per request: the proxy address depends on the client.
        proxy_addr = derive_proxy_addr(ctx)
        return self.renderer.render(self.direct_list.snapshot(), proxy_addr)

    def send(self, ctx: ConnectionContext) -> int:
        data = self.generate(ctx)
        try:
            return ctx.write(data)
        except OSError as e:
            logger.debug("cli(%s) error sending PAC: %s", ctx.remote_addr(), e)
            raise
