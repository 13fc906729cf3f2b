from flask import Flask, request, jsonify
from pacsvc.config import load_config
from pacsvc.errors import PacError, public_error_message
from pacsvc.logutil import configure_logging
from pacsvc.pac_renderer import PAC_MIMETYPE
from pacsvc.pac_service import join_host_port, split_host_port
from pacsvc.runtime import build_runtime
import logging


logger = logging.getLogger(__name__)

config = load_config()
configure_logging(config.log_level)

app = Flask(__name__)

# Builds the PAC template (fails loudly on a broken one) and opens the site-stat DB.
runtime = build_runtime(config)

# The direct list is loaded before the first request either way; DISABLE_BACKGROUND
# only skips the periodic refresh and housekeeping threads.
runtime.start()


def _request_host() -> str:
    raw = (request.host or '').strip()
    try:
        host, _ = split_host_port(raw)
    except ValueError:
        host = raw
    host = host.strip('[]')
    return host or '127.0.0.1'


def _proxy_addr_for_request() -> str:
    if config.addr_in_pac:
        return config.addr_in_pac
    return join_host_port(_request_host(), config.proxy_port)


def _json_error(e: Exception, status: int):
    return jsonify({'ok': False, 'error': public_error_message(e)}), status


@app.route('/health', methods=['GET'])
def health():
    return jsonify({
        'ok': True,
        'refresh_running': runtime.direct_list.running,
        'direct_list_version': runtime.direct_list.version,
    })


@app.route('/proxy.pac', methods=['GET'])
def proxy_pac():
    # Rendered per request: the proxy address follows the Host the client used.
    proxy_addr = _proxy_addr_for_request()
    try:
        body = runtime.renderer.render_body(runtime.direct_list.snapshot(), proxy_addr)
    except PacError as e:
        logger.exception("Error generating pac file for %s", request.remote_addr)
        return app.response_class(public_error_message(e), status=500, mimetype='text/plain')
    resp = app.response_class(body, mimetype=PAC_MIMETYPE)
    resp.headers['Server'] = runtime.renderer.server_id
    return resp


@app.route('/wpad.dat', methods=['GET'])
def wpad_dat():
    # WPAD convention: clients request http://wpad.<domain>/wpad.dat
    resp = proxy_pac()
    if resp.status_code == 200:
        resp.headers['Content-Disposition'] = 'inline; filename="wpad.dat"'
    return resp


@app.route('/api/direct-list', methods=['GET'])
def api_direct_list():
    domains, version, refreshed_at = runtime.direct_list.state()
    return jsonify({
        'domains': list(domains),
        'version': version,
        'refreshed_at': int(refreshed_at),
    })


@app.route('/api/classify', methods=['GET'])
def api_classify():
    host = (request.args.get('host') or '').strip()
    if not host:
        return _json_error(ValueError('host is required.'), 400)
    url = (request.args.get('url') or f"http://{host}/").strip()

    clf = runtime.classifier
    is_ip, is_private = clf.host_is_ip(host)
    proxy_addr = _proxy_addr_for_request()
    snapshot = runtime.direct_list.snapshot()
    if snapshot:
        direct = frozenset(snapshot)
        bypass = clf.should_bypass(url, host, direct)
        result = clf.find_proxy_for_url(url, host, direct, proxy_addr)
    else:
        # An empty list is served as the minimal script, which proxies everything.
        bypass = False
        result = f"PROXY {proxy_addr}; DIRECT"
    return jsonify({
        'host': host,
        'domain': clf.classify(host),
        'is_ip': is_ip,
        'is_private': is_private,
        'document': 'full' if snapshot else 'minimal',
        'decision': 'DIRECT' if bypass else 'PROXY',
        'result': result,
    })


@app.route('/api/visits', methods=['POST'])
def api_visits():
    data = request.get_json(silent=True) or {}
    host = str(data.get('host') or '').strip()
    if not host:
        return _json_error(ValueError('host is required.'), 400)
    try:
        domain = runtime.store.record_visit(host, blocked=bool(data.get('blocked')))
    except Exception as e:
        logger.exception("Failed to record visit for %s", host)
        return _json_error(e, 500)
    # The direct list picks this up on its next refresh.
    return jsonify({'ok': True, 'domain': domain})
