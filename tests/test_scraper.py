import pytest
from curl_cffi import requests as curl_requests

from unifi_monitor.scraper import (BuildIdNotFound, FetchError, Product,
                                   StorefrontClient, extract_build_id)

from conftest import FakeResponse, FakeSession, category_payload

HOME_HTML = (
    '<html><head><script src="https://store.ui.com/_next/static/abc123/_ssgManifest.js" defer>'
    "</script></head><body></body></html>"
)


def _product(pid, title="t"):
    return {
        "id": pid,
        "title": title,
        "shortDescription": "desc",
        "slug": f"slug-{pid}",
        "thumbnail": {"url": f"https://img/{pid}.png"},
        "variants": [{"id": f"v{pid}", "displayPrice": {"amount": 999, "currency": "USD"}}],
    }


def test_extract_build_id():
    assert extract_build_id(HOME_HTML) == "abc123"


def test_extract_build_id_missing():
    with pytest.raises(BuildIdNotFound):
        extract_build_id("<html><script src='/_next/static/chunks/main.js'></script></html>")


def test_discover_build_id_sets_data_url():
    session = FakeSession(get=[FakeResponse(200, text=HOME_HTML)])
    client = StorefrontClient(session, "https://store.ui.com/us/en", timeout=10)

    assert client.discover_build_id() == "abc123"
    assert client.build_id == "abc123"
    assert client.data_url == "https://store.ui.com/_next/data/abc123/us/en.json"
    method, url, kwargs = session.calls[0]
    assert url == "https://store.ui.com/us/en"
    assert kwargs["timeout"] == 10


def test_discover_build_id_non_200():
    session = FakeSession(get=[FakeResponse(503, text="down")])
    client = StorefrontClient(session, "https://store.ui.com/us/en")
    with pytest.raises(FetchError):
        client.discover_build_id()
    assert client.build_id is None


def test_discover_build_id_no_match_keeps_previous():
    session = FakeSession(get=[FakeResponse(200, text=HOME_HTML), FakeResponse(200, text="<html/>")])
    client = StorefrontClient(session, "https://store.ui.com/us/en")
    client.discover_build_id()
    with pytest.raises(BuildIdNotFound):
        client.discover_build_id()
    assert client.build_id == "abc123"


def test_transport_error_becomes_fetch_error():
    session = FakeSession(get=[curl_requests.RequestsError("connection reset")])
    client = StorefrontClient(session, "https://store.ui.com/us/en")
    with pytest.raises(FetchError):
        client.discover_build_id()


def test_fetch_category_flattens_in_order():
    payload = category_payload([_product("a"), _product("b")], [], [_product("c")])
    session = FakeSession(get=[FakeResponse(200, text=HOME_HTML), FakeResponse(200, payload=payload)])
    client = StorefrontClient(session, "https://store.ui.com/us/en")
    build_id = client.discover_build_id()

    products = client.fetch_category("all-wifi", build_id)

    assert [p.id for p in products] == ["a", "b", "c"]
    assert products[0] == Product.from_dict(_product("a"))
    assert products[0].variants[0].amount == 999
    _, url, kwargs = session.calls[1]
    assert url == "https://store.ui.com/_next/data/abc123/us/en.json"
    assert kwargs["params"] == {"category": "all-wifi", "store": "us", "language": "en"}


def test_fetch_category_skips_entries_without_id():
    payload = category_payload([_product("a"), {"title": "no id"}, "junk"])
    session = FakeSession(get=[FakeResponse(200, text=HOME_HTML), FakeResponse(200, payload=payload)])
    client = StorefrontClient(session, "https://store.ui.com/us/en")
    client.discover_build_id()
    assert [p.id for p in client.fetch_category("all-wifi")] == ["a"]


def test_fetch_category_missing_keys_is_empty():
    session = FakeSession(get=[FakeResponse(200, text=HOME_HTML), FakeResponse(200, payload={"pageProps": {}})])
    client = StorefrontClient(session, "https://store.ui.com/us/en")
    client.discover_build_id()
    assert client.fetch_category("all-wifi") == []


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(404, text="not found"),
        FakeResponse(200, text="<html>not json</html>"),
        FakeResponse(200, payload=[1, 2, 3]),
        FakeResponse(200, payload={"pageProps": {"subCategories": "nope"}}),
        FakeResponse(200, payload={"pageProps": {"subCategories": [{"products": 5}]}}),
        FakeResponse(200, payload=category_payload([{"id": "a", "variants": 7}])),
        FakeResponse(200, payload=category_payload([{"id": "a", "variants": [{"id": "v", "displayPrice": "9"}]}])),
    ],
)
def test_fetch_category_errors(response):
    session = FakeSession(get=[FakeResponse(200, text=HOME_HTML), response])
    client = StorefrontClient(session, "https://store.ui.com/us/en")
    client.discover_build_id()
    with pytest.raises(FetchError):
        client.fetch_category("all-wifi")


def test_fetch_category_before_discovery():
    client = StorefrontClient(FakeSession(), "https://store.ui.com/us/en")
    with pytest.raises(FetchError):
        client.fetch_category("all-wifi")


def test_product_round_trip_keeps_wire_shape():
    raw = _product("x")
    assert Product.from_dict(raw).to_dict() == raw


def test_product_from_sparse_dict():
    p = Product.from_dict({"id": "only-id"})
    assert p.title == ""
    assert p.thumbnail_url == ""
    assert p.variants == ()
    assert p.first_variant is None


def test_wrong_typed_fields_raise_type_error():
    with pytest.raises(TypeError):
        Product.from_dict({"id": "a", "variants": 7})
    with pytest.raises(TypeError):
        Product.from_dict({"id": "a", "variants": [{"id": "v", "displayPrice": "9"}]})
