import pytest

from pacsvc.direct_list import DirectListStore
from pacsvc.errors import AddressDerivationError
from pacsvc.pac_renderer import PacRenderer
from pacsvc.pac_service import PacService, derive_proxy_addr, join_host_port, split_host_port


class FakeConn:
    def __init__(self, local="192.168.1.10:7778", addr_in_pac="", proxy_port="7777", fail_write=False):
        self._local = local
        self.addr_in_pac = addr_in_pac
        self.proxy_port = proxy_port
        self.fail_write = fail_write
        self.writes = []

    def local_addr(self):
        return self._local

    def remote_addr(self):
        return "192.168.1.50:51234"

    def write(self, data):
        if self.fail_write:
            raise BrokenPipeError("peer went away")
        self.writes.append(data)
        return len(data)


class StaticProvider:
    def __init__(self, domains):
        self.domains = domains

    def get_direct_list(self):
        return self.domains


def _service(domains):
    dl = DirectListStore(StaticProvider(domains))
    dl.refresh()
    return PacService(dl, PacRenderer())


def test_split_and_join_host_port():
    assert split_host_port("127.0.0.1:80") == ("127.0.0.1", "80")
    assert split_host_port("[::1]:7777") == ("::1", "7777")
    assert join_host_port("::1", "7777") == "[::1]:7777"
    assert join_host_port("10.0.0.1", "7777") == "10.0.0.1:7777"
    for bad in ("127.0.0.1", "::1:80", "[::1]", "[::1]80", "host:", ""):
        with pytest.raises(ValueError):
            split_host_port(bad)


def test_configured_address_wins():
    conn = FakeConn(local="not-an-address", addr_in_pac="proxy.lan:3128")
    assert derive_proxy_addr(conn) == "proxy.lan:3128"


def test_address_derived_from_local_socket():
    assert derive_proxy_addr(FakeConn(local="192.168.1.10:7778")) == "192.168.1.10:7777"
    assert derive_proxy_addr(FakeConn(local="[fe80::1]:7778")) == "[fe80::1]:7777"


def test_unsplittable_local_address_is_an_error():
    with pytest.raises(AddressDerivationError):
        derive_proxy_addr(FakeConn(local="garbage"))


def test_send_writes_whole_document_once():
    svc = _service(["example.com"])
    conn = FakeConn()

    n = svc.send(conn)

    assert len(conn.writes) == 1
    assert n == len(conn.writes[0])
    assert b"var httpProxy = 'PROXY 192.168.1.10:7777; DIRECT';" in conn.writes[0]


def test_empty_list_sends_minimal_document():
    svc = _service([])
    conn = FakeConn(addr_in_pac="127.0.0.1:1080")
    svc.send(conn)
    assert conn.writes[0].endswith(b"function FindProxyForURL(url, host) { return 'PROXY 127.0.0.1:1080; DIRECT'; };")


def test_generate_uses_latest_snapshot():
    provider = StaticProvider(["a.com"])
    dl = DirectListStore(provider)
    dl.refresh()
    svc = PacService(dl, PacRenderer())
    assert b'"a.com"' in svc.generate(FakeConn())

    provider.domains = ["b.com"]
    dl.refresh()
    out = svc.generate(FakeConn())
    assert b'"b.com"' in out
    assert b'"a.com"' not in out


def test_write_failure_is_reraised():
    svc = _service(["example.com"])
    with pytest.raises(OSError):
        svc.send(FakeConn(fail_write=True))


def test_address_failure_writes_nothing():
    svc = _service(["example.com"])
    conn = FakeConn(local="garbage")
    with pytest.raises(AddressDerivationError):
        svc.send(conn)
    assert conn.writes == []
