"""Discord webhook notifier.

Sends one rich embed per newly discovered product.  Discord answers 429 when
the channel is rate limited; those calls are retried a bounded number of
times, every other failure is raised to the caller untouched.
"""
from __future__ import annotations

import datetime as _dt
import json
import logging
import time
from typing import Callable, Optional

import requests

from .scraper import Product
from .utils import HTTPError, rate_limit_retrying

logger = logging.getLogger(__name__)

STORE_PRODUCT_URL = "https://store.ui.com/us/en/products/{slug}"
EMBED_COLOR = 15277667
BOT_NAME = "UniFi Store Monitor"
ICON_URL = "https://tse3.mm.bing.net/th?id=OIP.RadjPrUUrLwqfVTEI5YqmwHaIV&pid=Api&P=0&w=300&h=300"


def format_price(amount: int) -> str:
    """Format an integer amount of cents as dollars, e.g. 12345 -> "$123.45"."""
    amount = int(amount)
    sign = "-" if amount < 0 else ""
    amount = abs(amount)
    return f"{sign}${amount // 100}.{amount % 100:02d}"


def build_payload(product: Product, now: Optional[_dt.datetime] = None) -> dict:
    if now is None:
        now = _dt.datetime.now(_dt.timezone.utc)

    variant = product.first_variant
    variant_id = variant.id if variant and variant.id else "n/a"
    price = format_price(variant.amount) if variant else "n/a"

    embed = {
        "title": product.title or "Unknown product",
        "color": EMBED_COLOR,
        "url": STORE_PRODUCT_URL.format(slug=product.slug),
        "timestamp": now.isoformat(),
        "thumbnail": {"url": product.thumbnail_url},
        "author": {"name": "🎉 **New Product Alert!** 🎉", "icon_url": ICON_URL},
        "description": f"{product.short_description}\n",
        "fields": [
            {"name": "Variant", "value": variant_id, "inline": True},
            {"name": "Price", "value": price, "inline": True},
        ],
        "footer": {"text": BOT_NAME, "icon_url": ICON_URL},
    }
    return {"username": BOT_NAME, "avatar_url": ICON_URL, "embeds": [embed]}


class DiscordNotifier:
    def __init__(
        self,
        webhook_url: str,
        session: requests.Session,
        *,
        timeout: float = 10,
        max_attempts: int = 3,
        rate_limit_wait: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.webhook_url = webhook_url
        self.session = session
        self.timeout = timeout
        self._retrying = rate_limit_retrying(max_attempts, rate_limit_wait, sleep=sleep)

    def _post(self, body: str) -> requests.Response:
        return self.session.post(
            self.webhook_url,
            data=body.encode("utf-8"),
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
            },
            timeout=self.timeout,
        )

    def send_product(self, product: Product) -> None:
        if not self.webhook_url:
            logger.error("Discord webhook URL is not configured. Cannot send notification.")
            return

        body = json.dumps(build_payload(product))
        logger.info("Sending Discord notification for %s (id=%s)", product.title, product.id)
        try:
            resp = self._retrying(self._post, body)
        except requests.RequestException as e:
            raise HTTPError(f"failed to send discord webhook: {e}") from e

        if resp.status_code in (200, 204):
            return

        logger.error(
            "Discord error response (status=%s, headers=%s): %s",
            resp.status_code, dict(resp.headers), resp.text,
        )
        raise HTTPError(
            f"discord webhook returned status code: {resp.status_code}",
            status_code=resp.status_code,
            body=resp.text,
        )


__all__ = ["DiscordNotifier", "build_payload", "format_price"]
