"""Raw-socket PAC listener.

Each accepted connection gets its own thread, reads one request head and,
for the PAC paths, receives the generated response in a single write before
the connection is closed. The proxy address embedded in the script is taken
from the socket the client connected to unless PAC_PROXY_ADDR is set.
"""

from __future__ import annotations

import logging
import socket
import socketserver
from typing import Tuple

from pacsvc.config import load_config
from pacsvc.errors import AddressDerivationError, InitializationError, RenderError
from pacsvc.logutil import configure_logging
from pacsvc.pac_service import PacService, join_host_port
from pacsvc.runtime import build_runtime


logger = logging.getLogger("pac_server")


PAC_PATHS = ("/", "/pac", "/proxy.pac", "/wpad.dat")
MAX_HEAD_BYTES = 65536


def _format_sockaddr(addr) -> str:
    if isinstance(addr, tuple) and len(addr) >= 2:
        return join_host_port(str(addr[0]), str(addr[1]))
    return str(addr or "")


class SocketConnection:
    """Adapts an accepted socket to pacsvc.pac_service.ConnectionContext."""

    def __init__(self, sock: socket.socket, *, addr_in_pac: str, proxy_port: str):
        self.sock = sock
        self.addr_in_pac = addr_in_pac
        self.proxy_port = proxy_port

    def local_addr(self) -> str:
        return _format_sockaddr(self.sock.getsockname())

    def remote_addr(self) -> str:
        try:
            return _format_sockaddr(self.sock.getpeername())
        except OSError:
            return ""

    def write(self, data: bytes) -> int:
        self.sock.sendall(data)
        return len(data)


def _parse_request_line(first_line: str) -> Tuple[str, str]:
    parts = (first_line or "").split()
    if len(parts) < 2:
        return "", ""
    method = parts[0].upper()
    target = parts[1]
    # Absolute-form targets arrive when a browser sends the PAC fetch through us.
    if "://" in target:
        rest = target.split("://", 1)[1]
        target = "/" + rest.split("/", 1)[1] if "/" in rest else "/"
    return method, target.split("?", 1)[0]


def _plain_response(status: str, body: str, server_id: str) -> bytes:
    return (
        f"HTTP/1.1 {status}\r\n"
        f"Server: {server_id}\r\n"
        "Content-Type: text/plain; charset=utf-8\r\n"
        "Connection: close\r\n"
        "\r\n"
        f"{body}"
    ).encode("utf-8")


class PacRequestHandler(socketserver.BaseRequestHandler):
    server: "PacHTTPServer"

    def handle(self) -> None:
        self.request.settimeout(10)
        buf = b""
        try:
            while b"\r\n\r\n" not in buf and b"\n\n" not in buf and len(buf) < MAX_HEAD_BYTES:
                chunk = self.request.recv(4096)
                if not chunk:
                    break
                buf += chunk
        except socket.timeout:
            return
        except (ConnectionResetError, BrokenPipeError):
            return
        if not buf:
            return

        first_line = buf.split(b"\n", 1)[0].rstrip(b"\r").decode("iso-8859-1", errors="replace")
        method, path = _parse_request_line(first_line)
        conn = SocketConnection(
            self.request,
            addr_in_pac=self.server.addr_in_pac,
            proxy_port=self.server.proxy_port,
        )
        remote = conn.remote_addr()

        try:
            if method != "GET":
                self.request.sendall(_plain_response("405 Method Not Allowed", "Method not allowed", self.server.server_id))
                logger.info('%s "%s" 405', remote, first_line)
                return
            if path not in PAC_PATHS:
                self.request.sendall(_plain_response("404 Not Found", "Not found", self.server.server_id))
                logger.info('%s "%s" 404', remote, first_line)
                return
        except OSError:
            return

        try:
            n = self.server.pac.send(conn)
        except (RenderError, AddressDerivationError):
            # Nothing was written; the client sees the connection close.
            logger.exception("Failed to serve PAC to %s", remote)
            return
        except OSError:
            return
        logger.info('%s "%s" 200 %d', remote, first_line, n)


class PacHTTPServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True

    def __init__(
        self,
        server_address,
        handler_class,
        pac: PacService,
        *,
        addr_in_pac: str = "",
        proxy_port: str = "7777",
        server_id: str = "cow-proxy",
    ):
        super().__init__(server_address, handler_class)
        self.pac = pac
        self.addr_in_pac = addr_in_pac
        self.proxy_port = proxy_port
        self.server_id = server_id


def main() -> int:
    cfg = load_config()
    configure_logging(cfg.log_level)

    try:
        runtime = build_runtime(cfg)
    except InitializationError:
        logger.critical("PAC subsystem failed to initialise", exc_info=True)
        return 1

    runtime.start()
    logger.info(
        "listening on %s:%s, proxy port %s, %d direct domains",
        cfg.listen_host,
        cfg.listen_port,
        cfg.addr_in_pac or cfg.proxy_port,
        len(runtime.direct_list.snapshot()),
    )
    try:
        with PacHTTPServer(
            (cfg.listen_host, cfg.listen_port),
            PacRequestHandler,
            runtime.service,
            addr_in_pac=cfg.addr_in_pac,
            proxy_port=cfg.proxy_port,
            server_id=cfg.server_id,
        ) as srv:
            srv.serve_forever(poll_interval=0.2)
    except KeyboardInterrupt:
        pass
    finally:
        runtime.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
