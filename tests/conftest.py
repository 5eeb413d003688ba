import os

os.environ.setdefault("STORE_URL", "http://store.test")
os.environ.setdefault("STORE_KEY", "test-key")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("VIEWER_TIMEZONE", "UTC")
os.environ.setdefault("PAGE_SIZE", "10")

import json

import httpx
import pytest
from fakeredis import FakeAsyncRedis, FakeServer

from salon_admin.cache import CollectionCache
from salon_admin.store import StoreClient


class StoreStub:
    """
    Records every request sent to the store and answers from registered routes.

    A route matches on method and table (plus an optional predicate); when
    it holds several replies they are handed out in order and the last one
    repeats.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._routes = []

    def on(self, method, table, *replies, when=None):
        self._routes.append({"method": method, "table": table, "replies": list(replies), "when": when})
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = request.url.path.rsplit("/", 1)[-1]
        for route in self._routes:
            if route["method"] != request.method or route["table"] != table:
                continue
            if route["when"] and not route["when"](request):
                continue
            replies = route["replies"]
            reply = replies.pop(0) if len(replies) > 1 else replies[0]
            if callable(reply):
                reply = reply(request)
            if isinstance(reply, Exception):
                raise reply
            return reply
        return httpx.Response(404, json={"message": f"no route for {request.method} {table}"})

    def calls(self, method=None, table=None) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if (method is None or r.method == method)
            and (table is None or r.url.path.endswith(f"/{table}"))
        ]


def ok(data, status=200, headers=None):
    return httpx.Response(status, json=data, headers=headers or {})


def store_error(status=400, message="boom", code="XX000"):
    return httpx.Response(status, json={"message": message, "code": code, "details": None, "hint": None})


def body(request: httpx.Request):
    return json.loads(request.content)


def params(request: httpx.Request) -> list[tuple[str, str]]:
    return request.url.params.multi_items()


@pytest.fixture
def stub():
    return StoreStub()


@pytest.fixture
def store(stub):
    return StoreClient("http://store.test", "test-key", transport=httpx.MockTransport(stub.handler))


@pytest.fixture
def redis():
    return FakeAsyncRedis(decode_responses=True)


@pytest.fixture
def cache(redis):
    return CollectionCache(redis, ttl_seconds=60)


@pytest.fixture
def down_cache():
    server = FakeServer()
    server.connected = False
    return CollectionCache(FakeAsyncRedis(server=server, decode_responses=True), ttl_seconds=60)
