import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlsplit

import pytest

from tunnelkit.download import DownloadError, Request, Response, down, resolve

PAYLOAD = bytes(range(256)) * 400


class _Handler(BaseHTTPRequestHandler):
    def log_message(self, *args):
        pass

    def _write(self, body):
        try:
            self.wfile.write(body)
        except (BrokenPipeError, ConnectionResetError):
            pass

    def do_GET(self):
        path = urlsplit(self.path).path
        if path == "/missing":
            self.send_error(404)
            return
        if path == "/badrange":
            self.send_response(206)
            self.send_header("Content-Range", "bytes 0-0/abc")
            self.send_header("Content-Length", "1")
            self.end_headers()
            self._write(PAYLOAD[:1])
            return
        rng = self.headers.get("Range")
        if rng and not path.startswith("/plain"):
            first, _, last = rng[len("bytes="):].partition("-")
            start = int(first)
            end = min(int(last), len(PAYLOAD) - 1)
            body = PAYLOAD[start:end + 1]
            self.send_response(206)
            self.send_header("Content-Range", f"bytes {start}-{end}/{len(PAYLOAD)}")
        else:
            body = PAYLOAD
            self.send_response(200)
        if path == "/attach":
            self.send_header("Content-Disposition", 'attachment; filename="report.bin"')
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self._write(body)


@pytest.fixture
def base_url(monkeypatch):
    for name in ("HTTP_PROXY", "http_proxy", "HTTPS_PROXY", "https_proxy", "ALL_PROXY", "all_proxy"):
        monkeypatch.delenv(name, raising=False)
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


def test_resolve_ranged_resource(base_url):
    got = resolve(Request("get", base_url + "/ranged/data.bin"))
    assert got == Response("data.bin", len(PAYLOAD), True)


def test_resolve_uses_content_disposition(base_url):
    got = resolve(Request("GET", base_url + "/attach"))
    assert got.name == "report.bin"
    assert got.size == len(PAYLOAD)


def test_resolve_without_range_support(base_url):
    got = resolve(Request("GET", base_url + "/plain/file.dat"))
    assert got == Response("file.dat", len(PAYLOAD), False)


def test_resolve_unknown_name(base_url):
    got = resolve(Request("GET", base_url + "/ranged/"))
    assert got.name == "unknow"


def test_resolve_bad_status(base_url):
    with pytest.raises(DownloadError, match="404"):
        resolve(Request("GET", base_url + "/missing"))


def test_resolve_bad_content_range(base_url):
    with pytest.raises(DownloadError):
        resolve(Request("GET", base_url + "/badrange"))


def test_down_in_parts(base_url, tmp_path):
    target = tmp_path / "out.bin"
    down(Request("GET", base_url + "/ranged/data.bin"), str(target))
    assert target.read_bytes() == PAYLOAD


def test_down_single_stream(base_url, tmp_path):
    target = tmp_path / "plain.bin"
    down(Request("GET", base_url + "/plain/file.dat"), str(target))
    assert target.read_bytes() == PAYLOAD