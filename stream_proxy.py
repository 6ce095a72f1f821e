import http.server
import socketserver
import threading
import urllib.error
import urllib.request
import urllib.parse
import logging

LOG = logging.getLogger(__name__)

PROXY_PATH = "/api/proxy"
PROXY_USER_AGENT = "Mozilla/5.0"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def fetch_upstream(target_url):
    """Fetch ``target_url`` in full. Returns ``(body, content_type)``.

    The whole body is read into memory before returning and there is no
    timeout; large or never-ending responses hold the handler thread.
    Upstream HTTP error statuses are relayed like any other response, only
    transport failures raise.
    """
    req = urllib.request.Request(target_url, headers={"User-Agent": PROXY_USER_AGENT})
    try:
        with urllib.request.urlopen(req) as resp:
            content_type = resp.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE
            body = resp.read()
    except urllib.error.HTTPError as e:
        content_type = (e.headers.get("Content-Type") if e.headers else None) or DEFAULT_CONTENT_TYPE
        body = e.read()
        e.close()
    return body, content_type


class StreamProxyHandler(http.server.BaseHTTPRequestHandler):
    server_version = "IPTVPlayerProxy/1.0"

    def log_message(self, format, *args):
        LOG.debug("%s - %s", self.address_string(), format % args)

    def _send_cors_headers(self):
        self.send_header('Access-Control-Allow-Origin', '*')
        self.send_header('Access-Control-Allow-Headers', '*')

    def _send_text(self, status, text):
        data = text.encode("utf-8")
        self.send_response(status)
        self._send_cors_headers()
        self.send_header('Content-Type', 'text/plain; charset=utf-8')
        self.send_header('Content-Length', str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def do_OPTIONS(self):
        self.send_response(200)
        self._send_cors_headers()
        self.send_header('Access-Control-Allow-Methods', 'GET, OPTIONS')
        self.send_header('Content-Length', '0')
        self.end_headers()

    def do_GET(self):
        parsed = urllib.parse.urlparse(self.path)
        if parsed.path.rstrip('/') != PROXY_PATH:
            return self.send_error(404)

        query = urllib.parse.parse_qs(parsed.query)
        target_url = query.get('url', [None])[0]
        if not target_url:
            return self._send_text(400, "Missing URL")

        try:
            body, content_type = fetch_upstream(target_url)
        except Exception as e:
            LOG.warning("Proxy fetch failed for %s: %s", target_url, e)
            return self._send_text(500, f"Proxy Error: {e}")

        self.send_response(200)
        self._send_cors_headers()
        self.send_header('Content-Type', content_type)
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        try:
            self.wfile.write(body)
        except (BrokenPipeError, ConnectionResetError) as e:
            LOG.debug("Client went away during proxy reply: %s", e)


class _ThreadingServer(socketserver.ThreadingMixIn, http.server.HTTPServer):
    daemon_threads = True
    allow_reuse_address = True


class StreamProxy:
    def __init__(self, host="127.0.0.1", port=0):
        self.server = None
        self.thread = None
        self.host = host
        self.port = port
        self.lock = threading.Lock()

    @property
    def running(self):
        return self.server is not None

    def start(self):
        with self.lock:
            if self.server:
                return
            self.server = _ThreadingServer((self.host, self.port), StreamProxyHandler)
            self.port = self.server.server_address[1]
            self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
            self.thread.start()
        LOG.info("Proxy started at http://%s:%s%s", self.host, self.port, PROXY_PATH)

    def stop(self):
        with self.lock:
            server, self.server = self.server, None
        if server:
            server.shutdown()
            server.server_close()
            LOG.info("Proxy stopped")

    def serve_forever(self):
        """Run in the calling thread until interrupted."""
        self.server = _ThreadingServer((self.host, self.port), StreamProxyHandler)
        self.port = self.server.server_address[1]
        LOG.info("Proxy serving at http://%s:%s%s", self.host, self.port, PROXY_PATH)
        try:
            self.server.serve_forever()
        finally:
            self.server.server_close()
            self.server = None

    def proxied_url(self, target_url):
        if not self.server:
            self.start()
        params = urllib.parse.urlencode({'url': target_url})
        return f"http://{self.host}:{self.port}{PROXY_PATH}?{params}"


_PROXY = StreamProxy()
def get_proxy(): return _PROXY
