from __future__ import annotations

from typing import Iterable, Optional, Sequence

from jinja2 import Environment, StrictUndefined, Template, TemplateError

from pacsvc.errors import InitializationError, RenderError
from pacsvc.host_classifier import TOP_LEVEL_DOMAINS


PAC_MIMETYPE = "application/x-ns-proxy-autoconfig"

# No Content-Length: the connection is closed after the body.
PAC_HEADER_TEMPLATE = (
    "HTTP/1.1 200 OK\r\n"
    "Server: {server_id}\r\n"
    "Content-Type: " + PAC_MIMETYPE + "\r\n"
    "Connection: close\r\n"
    "\r\n"
)

MINIMAL_PAC_TEMPLATE = "function FindProxyForURL(url, host) {{ return 'PROXY {proxy_addr}; DIRECT'; }};"

# hostIsIP/host2Domain/FindProxyForURL must stay in step with
# pacsvc.host_classifier.
PAC_TEMPLATE = """var direct = 'DIRECT';
var httpProxy = 'PROXY {{ proxy_addr }}; DIRECT';

var directList = [
"",
"{{ direct_domains }}"
];

// Prototype-free so hosts like "constructor" or "__proto__" are not found by accident.
var directAcc = Object.create(null);
for (var i = 0; i < directList.length; i += 1) {
	directAcc[directList[i]] = true;
}

var topLevel = {
{{ top_level }}
};

function has(obj, key) {
	return Object.prototype.hasOwnProperty.call(obj, key);
}

// hostIsIP determines whether a host address is an IP address and whether
// it is private. Only IPv4 addresses are recognised.
function hostIsIP(host) {
	var part = host.split('.');
	if (part.length != 4) {
		return [false, false];
	}
	var n;
	for (var i = 3; i >= 0; i--) {
		if (!/^[0-9]{1,3}$/.test(part[i])) {
			return [false, false];
		}
		n = Number(part[i]);
		if (n > 255) {
			return [false, false];
		}
	}
	// Numeric compare: "010" is the same octet as "10".
	var a = Number(part[0]), b = Number(part[1]);
	if (a == 127 || a == 10 || (a == 192 && b == 168)) {
		return [true, true];
	}
	if (a == 172 && 16 <= b && b <= 31) {
		return [true, true];
	}
	return [true, false];
}

function host2Domain(host) {
	var arr, isIP, isPrivate;
	arr = hostIsIP(host);
	isIP = arr[0];
	isPrivate = arr[1];
	if (isPrivate) {
		return "";
	}
	if (isIP) {
		return host;
	}

	var lastDot = host.lastIndexOf('.');
	if (lastDot === -1) {
		return ""; // simple host name has no domain
	}
	// Find the second last dot
	var dot2ndLast = host.lastIndexOf(".", lastDot-1);
	if (dot2ndLast === -1)
		return host;

	var part = host.substring(dot2ndLast+1, lastDot);
	if (has(topLevel, part) || has(topLevel, host.substring(dot2ndLast+1))) {
		var dot3rdLast = host.lastIndexOf(".", dot2ndLast-1);
		if (dot3rdLast === -1) {
			return host;
		}
		return host.substring(dot3rdLast+1);
	}
	return host.substring(dot2ndLast+1);
}

function FindProxyForURL(url, host) {
	if (url.substring(0,4) == "ftp:")
		return direct;
	if (host.substring(0,7) == "::ffff:")
		return direct;
	if (host.indexOf(".local", host.length - 6) !== -1) {
		return direct;
	}
	var domain = host2Domain(host);
	if (host.length == domain.length) {
		return has(directAcc, host) ? direct : httpProxy;
	}
	return (has(directAcc, host) || has(directAcc, domain)) ? direct : httpProxy;
}
"""


def pac_header(server_id: str = "cow-proxy") -> bytes:
    return PAC_HEADER_TEMPLATE.format(server_id=server_id).encode("latin-1")


def minimal_pac(proxy_addr: str) -> str:
    return MINIMAL_PAC_TEMPLATE.format(proxy_addr=proxy_addr)


def _js_string_body(s: str) -> str:
    # Contents of a double-quoted JS string literal.
    return (
        s.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\r", "\\r")
        .replace("\n", "\\n")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


def join_direct_list(snapshot: Sequence[str]) -> str:
    """Join domains for the `"{{ direct_domains }}"` slot: a","b","c with newlines."""
    return '",\n"'.join(_js_string_body(d) for d in snapshot)


def serialize_top_level(table: Iterable[str]) -> str:
    """Render the suffix table as object entries, without the final comma."""
    entries = "".join(f'\t"{_js_string_body(k)}": true,\n' for k in sorted(table))
    return entries[:-2]


class PacRenderer:
    """Turns a direct-list snapshot into a PAC document.

    The Jinja2 template is compiled once here and only ever executed
    afterwards, so one renderer is shared by all request threads.
    """

    def __init__(
        self,
        *,
        top_level: Iterable[str] = TOP_LEVEL_DOMAINS,
        server_id: str = "cow-proxy",
        template_source: Optional[str] = None,
    ):
        self.server_id = server_id
        self.header = pac_header(server_id)
        self.top_level = serialize_top_level(top_level)

        env = Environment(
            autoescape=False,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )
        try:
            self._template: Template = env.from_string(template_source or PAC_TEMPLATE)
        except TemplateError as e:
            raise InitializationError(f"PAC template does not compile: {e}") from e

    def render_body(self, snapshot: Sequence[str], proxy_addr: str) -> str:
        if not snapshot:
            return minimal_pac(proxy_addr)
        try:
            return self._template.render(
                proxy_addr=proxy_addr,
                direct_domains=join_direct_list(snapshot),
                top_level=self.top_level,
            )
        except (TemplateError, TypeError, AttributeError) as e:
            raise RenderError(f"Error generating PAC file: {e}") from e

    def render(self, snapshot: Sequence[str], proxy_addr: str) -> bytes:
        """Return the full HTTP response: fixed header followed by the script."""
        body = self.render_body(snapshot, proxy_addr)
        try:
            return self.header + body.encode("utf-8")
        except UnicodeError as e:
            raise RenderError(f"Error encoding PAC file: {e}") from e
