"""Shared fixtures: a local HTTP server that records uploads, and a multipart decoder."""

import re
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
from requests.structures import CaseInsensitiveDict
from requests_toolbelt.multipart.decoder import MultipartDecoder


class _CaptureHandler(BaseHTTPRequestHandler):
    """Stores each POST (headers and de-chunked body) on the server."""

    def do_POST(self):
        if self.headers.get("Transfer-Encoding", "").lower() == "chunked":
            body = self._read_chunked()
        else:
            body = self.rfile.read(int(self.headers.get("Content-Length", 0)))
        self.server.captured.append({
            "path": self.path,
            "headers": CaseInsensitiveDict(self.headers.items()),
            "body": body,
        })
        self.send_response(self.server.status)
        self.send_header("Content-Length", "2")
        self.end_headers()
        self.wfile.write(b"ok")

    def _read_chunked(self) -> bytes:
        chunks = []
        while True:
            size = int(self.rfile.readline().strip().split(b";")[0], 16)
            if size == 0:
                self.rfile.readline()
                return b"".join(chunks)
            chunks.append(self.rfile.read(size))
            self.rfile.readline()

    def log_message(self, format, *args):  # pylint: disable=redefined-builtin
        pass


@pytest.fixture
def upload_server():
    """A server on a free local port. ``server.captured`` holds the requests it saw."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _CaptureHandler)
    server.captured = []
    server.status = 200
    server.url = f"http://127.0.0.1:{server.server_address[1]}/upload"
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()
    thread.join()


def disposition(part) -> dict:
    """Content-Disposition parameters of a decoded part, e.g. {"name": "a"}."""
    value = part.headers[b"Content-Disposition"].decode("utf-8")
    return dict(re.findall(r'(\w+)="([^"]*)"', value))


@pytest.fixture
def decode():
    def _decode(body: bytes, content_type: str):
        return MultipartDecoder(body, content_type).parts

    return _decode
