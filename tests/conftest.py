from __future__ import annotations

import json

import pytest

from unifi_monitor.scraper import Product, Variant


class FakeResponse:
    def __init__(self, status_code=200, text="", payload=None, headers=None):
        self.status_code = status_code
        self.text = json.dumps(payload) if payload is not None else text
        self.headers = headers or {}

    def json(self):
        return json.loads(self.text)


class FakeSession:
    """Stands in for both requests.Session and curl_cffi Session.

    Responses are queued per method; an exception instance in the queue is
    raised instead of returned.
    """

    def __init__(self, get=None, post=None):
        self.queued = {"get": list(get or []), "post": list(post or [])}
        self.calls = []

    def _next(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        queue = self.queued[method]
        if not queue:
            raise AssertionError(f"unexpected {method.upper()} {url}")
        item = queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def get(self, url, **kwargs):
        return self._next("get", url, kwargs)

    def post(self, url, **kwargs):
        return self._next("post", url, kwargs)

    def close(self):
        pass


def category_payload(*groups):
    """Build a data-API response with one sub-category per group of product dicts."""
    return {"pageProps": {"subCategories": [{"products": list(g)} for g in groups]}}


def make_product(pid="p1", title=None, amount=12345, **kwargs):
    return Product(
        id=pid,
        title=title if title is not None else f"Product {pid}",
        short_description=kwargs.pop("short_description", "A thing"),
        slug=kwargs.pop("slug", f"slug-{pid}"),
        thumbnail_url=kwargs.pop("thumbnail_url", f"https://img.example/{pid}.png"),
        variants=kwargs.pop("variants", (Variant(id=f"v-{pid}", amount=amount, currency="USD"),)),
    )


@pytest.fixture
def product_factory():
    return make_product
