"""Internal catalog API sink.

POSTs each new product to the companion web app's API so its listing stays in
sync with the monitor.  Authenticated with a static bearer token.
"""

from __future__ import annotations

import json
import logging

import requests

from .scraper import Product
from .utils import HTTPError

logger = logging.getLogger(__name__)


class CatalogPush:
    def __init__(self, api_url: str, token: str, session: requests.Session, *, timeout: float = 10) -> None:
        self.api_url = api_url
        self.token = token
        self.session = session
        self.timeout = timeout

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def send_product(self, product: Product) -> None:
        if not self.api_url:
            logger.debug("Catalog push URL not configured; skipping %s", product.id)
            return

        logger.info("Sending product %s to API %s", product.id, self.api_url)
        try:
            resp = self.session.post(
                self.api_url,
                data=json.dumps(product.to_dict()),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise HTTPError(f"failed to send product to API: {e}") from e

        if resp.status_code in (200, 201):
            return

        logger.error("Failed to send product to API (status=%s): %s", resp.status_code, resp.text)
        raise HTTPError(
            f"unexpected status code: {resp.status_code}",
            status_code=resp.status_code,
            body=resp.text,
        )


__all__ = ["CatalogPush"]
