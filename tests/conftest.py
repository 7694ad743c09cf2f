import sys
import os
import json
import threading
from unittest.mock import Mock

import pytest

# Add project root to sys.path so tests can import top-level modules like 'storage', 'ingest', 'normalize', etc.
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from storage.retry import configure_retry, reset_retry  # noqa: E402


def make_response(status=200, body=None, headers=None):
    resp = Mock()
    resp.status_code = status
    resp.headers = headers or {}
    resp.json.return_value = body
    resp.text = json.dumps(body)
    return resp


class FakeHttp:
    """Stands in for requests.request: routes (method, url) to canned responses and records calls."""

    def __init__(self):
        self.routes = {}
        self.calls = []
        self._lock = threading.Lock()

    def add(self, method, url, body=None, status=200, handler=None):
        self.routes[(method, url)] = handler if handler is not None else make_response(status, body)

    def __call__(self, method, url, **kwargs):
        with self._lock:
            self.calls.append((method, url, kwargs))
        route = self.routes.get((method, url))
        if route is None:
            return make_response(404, {'message': 'Not Found'})
        if callable(route) and not isinstance(route, Mock):
            return route(url, kwargs)
        return route

    def urls(self, method=None):
        return [url for m, url, _ in self.calls if method is None or m == method]

    def params_for(self, url):
        return [kw.get('params') or {} for _, u, kw in self.calls if u == url]


@pytest.fixture
def fake_http(monkeypatch):
    fake = FakeHttp()
    monkeypatch.setattr('storage.retry.requests.request', fake)
    configure_retry(max_retries=1, backoff_base=0, backoff_jitter=0, max_backoff=0)
    yield fake
    reset_retry()
