import threading
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from adfetch import AppContext, Config
from adfetch.logbuffer import setup_logging
from app import create_app

PROXY_VARS = ('http_proxy', 'https_proxy', 'HTTP_PROXY', 'HTTPS_PROXY', 'all_proxy', 'ALL_PROXY')
TRUNCATED = 'x-test/truncated'


class StubServer:
    """Local HTTP responder standing in for the Graph API and the media CDN."""

    def __init__(self):
        self.routes = {}
        self.requests = []
        stub = self

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self):
                parts = urllib.parse.urlsplit(self.path)
                stub.requests.append((parts.path, dict(urllib.parse.parse_qsl(parts.query))))
                status, body, ctype = stub.routes.get(parts.path, (404, b'not found', 'text/plain'))
                if ctype == TRUNCATED:
                    # first chunk only, then the connection closes without the final chunk
                    self.send_response(status)
                    self.send_header('Transfer-Encoding', 'chunked')
                    self.end_headers()
                    self.wfile.write(b'%x\r\n%s\r\n' % (len(body), body))
                    self.wfile.flush()
                    self.close_connection = True
                    return
                self.send_response(status)
                self.send_header('Content-Type', ctype)
                self.send_header('Content-Length', str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, *args):
                pass

        self.server = ThreadingHTTPServer(('127.0.0.1', 0), Handler)
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)

    def add(self, path, body=b'', status=200, content_type='application/octet-stream'):
        if isinstance(body, str):
            body = body.encode()
        self.routes[path] = (status, body, content_type)

    def add_json(self, path, text, status=200):
        self.add(path, text, status=status, content_type='application/json')

    def add_truncated(self, path, first_chunk=b'partial'):
        self.routes[path] = (200, first_chunk, TRUNCATED)

    def url(self, path=''):
        host, port = self.server.server_address[:2]
        return f'http://{host}:{port}{path}'

    def paths(self):
        return [p for p, _ in self.requests]


@pytest.fixture(autouse=True)
def no_proxy(monkeypatch):
    for var in PROXY_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def stub():
    server = StubServer()
    server.thread.start()
    yield server
    server.server.shutdown()
    server.server.server_close()


@pytest.fixture
def config(stub, tmp_path):
    return Config(
        facebook_access_token='test-token',
        download_dir=tmp_path / 'downloads',
        graph_api_base=stub.url(),
        download_timeout=5.0,
        request_timeout=5.0,
        max_concurrent_downloads=4,
    )


@pytest.fixture
def ctx(config):
    return AppContext(config, log_buffer=setup_logging(200))


@pytest.fixture
def client(ctx):
    app = create_app(ctx)
    app.config['TESTING'] = True
    return app.test_client()


def make_ad(ad_id, images=(), videos=(), **extra):
    ad = {
        'id': ad_id,
        'page_name': f'Page {ad_id}',
        'ad_creative_bodies': [f'Body of {ad_id}'],
        'ad_creative_images': [{'url': u} for u in images],
        'ad_creative_videos': [{'video_url': u} for u in videos],
    }
    ad.update(extra)
    return ad
