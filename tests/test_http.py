import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from errbeacon.http import HttpTransport, apply_rate_limit_headers
from errbeacon.ratelimit import RateLimiter, RateLimitingCategory


class _Handler(BaseHTTPRequestHandler):
    def do_POST(self):
        length = int(self.headers.get("Content-Length", 0))
        body = self.rfile.read(length)
        self.server.received.append(("POST", self.path, self.headers, body))
        status, headers = self.server.reply
        self.send_response(status)
        for name, value in headers.items():
            self.send_header(name, value)
        self.send_header("Content-Length", "2")
        self.end_headers()
        self.wfile.write(b"ok")

    def do_CONNECT(self):
        self.server.received.append(("CONNECT", self.path, self.headers, b""))
        self.send_response(502)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, format, *args):
        pass


@pytest.fixture
def server():
    srv = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    srv.received = []
    srv.reply = (200, {})
    thread = threading.Thread(target=srv.serve_forever, daemon=True)
    thread.start()
    yield srv
    srv.shutdown()
    srv.server_close()


def _base(srv):
    return f"http://127.0.0.1:{srv.server_address[1]}"


def _closed_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_apply_retry_after_case_insensitive():
    limiter = RateLimiter()
    apply_rate_limit_headers(limiter, {"RETRY-AFTER": " 60 "})
    left = limiter.is_disabled(RateLimitingCategory.ANY)
    assert left is not None and 0 < left <= 60


def test_apply_sentry_header_pairs():
    limiter = RateLimiter()
    apply_rate_limit_headers(limiter, [("X-Sentry-Rate-Limits", "120:error:project")])
    left = limiter.is_disabled(RateLimitingCategory.ERROR)
    assert left is not None and left <= 120
    assert limiter.is_disabled(RateLimitingCategory.ANY) is None
    assert limiter.is_disabled(RateLimitingCategory.SESSION) is None


def test_apply_ignores_unrelated_headers():
    limiter = RateLimiter()
    apply_rate_limit_headers(limiter, {"Content-Type": "application/json"})
    for category in RateLimitingCategory:
        assert limiter.is_disabled(category) is None


def test_invalid_scheme_rejected():
    with pytest.raises(ValueError):
        HttpTransport("ftp://example.com/api/42/envelope/")


def test_posts_envelope_with_headers(server):
    transport = HttpTransport(
        _base(server) + "/api/42/envelope/", auth="Sentry token", user_agent="agent/1.0"
    )
    transport.send_envelope(b'{"event_id":"abc"}\n')
    assert transport.flush(5.0) is True
    assert transport.shutdown(5.0) is True
    assert len(server.received) == 1
    method, path, headers, body = server.received[0]
    assert method == "POST"
    assert path == "/api/42/envelope/"
    assert body == b'{"event_id":"abc"}\n'
    assert headers["X-Sentry-Auth"] == "Sentry token"
    assert headers["Content-Type"] == "application/json"
    assert headers["User-Agent"] == "agent/1.0"


def test_text_and_serializable_envelopes(server):
    class Envelope:
        def to_bytes(self):
            return b"serialized"

    transport = HttpTransport(_base(server) + "/")
    transport.send_envelope("text")
    transport.send_envelope(Envelope())
    assert transport.shutdown(5.0) is True
    assert [item[3] for item in server.received] == [b"text", b"serialized"]


def test_retry_after_on_error_status_blocks_further_sends(server):
    server.reply = (429, {"Retry-After": "60"})
    limiter = RateLimiter()
    transport = HttpTransport(_base(server) + "/", limiter=limiter)
    transport.send_envelope(b"first")
    assert transport.flush(5.0) is True
    left = limiter.is_disabled(RateLimitingCategory.ANY)
    assert left is not None and left <= 60
    transport.send_envelope(b"second")
    assert transport.shutdown(5.0) is True
    assert [item[3] for item in server.received] == [b"first"]


def test_category_limit_does_not_block_sending(server):
    server.reply = (200, {"X-Sentry-Rate-Limits": "60:error:project"})
    limiter = RateLimiter()
    transport = HttpTransport(_base(server) + "/", limiter=limiter)
    transport.send_envelope(b"one")
    assert transport.flush(5.0) is True
    assert limiter.is_disabled(RateLimitingCategory.ERROR) is not None
    assert limiter.is_disabled(RateLimitingCategory.ANY) is None
    transport.send_envelope(b"two")
    assert transport.shutdown(5.0) is True
    assert len(server.received) == 2


def test_connection_failure_is_swallowed():
    limiter = RateLimiter()
    transport = HttpTransport(f"http://127.0.0.1:{_closed_port()}/", limiter=limiter)
    transport.send_envelope(b"lost")
    assert transport.flush(5.0) is True
    assert limiter.is_disabled(RateLimitingCategory.ANY) is None
    assert transport.shutdown(5.0) is True


def test_send_after_shutdown_is_dropped(server):
    transport = HttpTransport(_base(server) + "/")
    assert transport.shutdown(5.0) is True
    transport.send_envelope(b"late")
    assert transport.flush(1.0) is False
    assert server.received == []


def test_http_proxy_used_for_http_url(server):
    transport = HttpTransport(
        "http://errbeacon.invalid/api/42/envelope/", http_proxy=_base(server)
    )
    transport.send_envelope(b"via proxy")
    assert transport.shutdown(5.0) is True
    assert len(server.received) == 1
    method, path, _, body = server.received[0]
    assert method == "POST"
    assert path == "http://errbeacon.invalid/api/42/envelope/"
    assert body == b"via proxy"


def test_https_proxy_used_for_https_url(server):
    transport = HttpTransport(
        "https://errbeacon.invalid/api/42/envelope/",
        http_proxy=f"http://127.0.0.1:{_closed_port()}",
        https_proxy=_base(server),
    )
    transport.send_envelope(b"tunnelled")
    assert transport.shutdown(5.0) is True
    assert [(item[0], item[1]) for item in server.received] == [
        ("CONNECT", "errbeacon.invalid:443")
    ]


def test_https_url_falls_back_to_http_proxy(server):
    transport = HttpTransport(
        "https://errbeacon.invalid/api/42/envelope/", http_proxy=_base(server)
    )
    transport.send_envelope(b"tunnelled")
    assert transport.shutdown(5.0) is True
    assert [(item[0], item[1]) for item in server.received] == [
        ("CONNECT", "errbeacon.invalid:443")
    ]