import datetime as dt
import json

import pytest
import requests

from unifi_monitor.catalog_push import CatalogPush
from unifi_monitor.notifier import DiscordNotifier, build_payload, format_price
from unifi_monitor.utils import HTTPError

from conftest import FakeResponse, FakeSession, make_product

WEBHOOK = "https://discord.com/api/webhooks/1/token"


@pytest.mark.parametrize(
    "amount, expected",
    [
        (12345, "$123.45"), (100, "$1.00"), (5, "$0.05"), (0, "$0.00"),
        (199900, "$1999.00"), (-5, "-$0.05"), (-12345, "-$123.45"),
    ],
)
def test_format_price(amount, expected):
    assert format_price(amount) == expected


def test_build_payload():
    now = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.timezone.utc)
    payload = build_payload(make_product("p1", title="Dream Router", amount=19900, slug="udr"), now=now)

    embed = payload["embeds"][0]
    assert embed["title"] == "Dream Router"
    assert embed["url"] == "https://store.ui.com/us/en/products/udr"
    assert embed["timestamp"] == "2024-05-01T12:00:00+00:00"
    assert embed["thumbnail"] == {"url": "https://img.example/p1.png"}
    assert embed["fields"] == [
        {"name": "Variant", "value": "v-p1", "inline": True},
        {"name": "Price", "value": "$199.00", "inline": True},
    ]
    assert payload["username"] == embed["footer"]["text"]


def test_build_payload_without_variants():
    fields = build_payload(make_product("p1", variants=()))["embeds"][0]["fields"]
    assert [f["value"] for f in fields] == ["n/a", "n/a"]


def _notifier(session, sleeps=None, **kwargs):
    return DiscordNotifier(
        WEBHOOK, session, rate_limit_wait=5.0,
        sleep=(sleeps.append if sleeps is not None else lambda s: None), **kwargs
    )


def test_send_product_posts_form_encoded_json():
    session = FakeSession(post=[FakeResponse(204)])
    _notifier(session).send_product(make_product("p1"))

    _, url, kwargs = session.calls[0]
    assert url == WEBHOOK
    assert kwargs["headers"]["Content-Type"] == "application/x-www-form-urlencoded"
    assert json.loads(kwargs["data"])["embeds"][0]["title"] == "Product p1"


def test_rate_limited_once_then_succeeds():
    sleeps = []
    session = FakeSession(post=[FakeResponse(429, text="slow down"), FakeResponse(204)])

    _notifier(session, sleeps).send_product(make_product("p1"))

    assert len(session.calls) == 2
    assert sleeps == [5.0]


def test_rate_limit_retry_is_bounded():
    sleeps = []
    session = FakeSession(post=[FakeResponse(429) for _ in range(3)])

    with pytest.raises(HTTPError) as exc:
        _notifier(session, sleeps, max_attempts=3).send_product(make_product("p1"))

    assert exc.value.status_code == 429
    assert len(session.calls) == 3
    assert len(sleeps) == 2


def test_other_errors_are_not_retried():
    session = FakeSession(post=[FakeResponse(400, text='{"message": "Invalid Form Body"}')])
    with pytest.raises(HTTPError) as exc:
        _notifier(session).send_product(make_product("p1"))
    assert exc.value.status_code == 400
    assert "Invalid Form Body" in exc.value.body
    assert len(session.calls) == 1


def test_transport_error_is_wrapped():
    session = FakeSession(post=[requests.ConnectionError("refused")])
    with pytest.raises(HTTPError):
        _notifier(session).send_product(make_product("p1"))


def test_unconfigured_webhook_is_skipped():
    session = FakeSession()
    DiscordNotifier("", session).send_product(make_product("p1"))
    assert session.calls == []


def test_catalog_push_sends_bearer_token():
    session = FakeSession(post=[FakeResponse(201)])
    CatalogPush("http://localhost:3001/api/products", "secret", session).send_product(make_product("p1"))

    _, url, kwargs = session.calls[0]
    assert url == "http://localhost:3001/api/products"
    assert kwargs["headers"]["Authorization"] == "Bearer secret"
    assert json.loads(kwargs["data"]) == make_product("p1").to_dict()


def test_catalog_push_failure_raises():
    session = FakeSession(post=[FakeResponse(401, text="bad token")])
    with pytest.raises(HTTPError) as exc:
        CatalogPush("http://localhost:3001/api/products", "secret", session).send_product(make_product("p1"))
    assert exc.value.status_code == 401
    assert len(session.calls) == 1
