from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from curl_cffi import requests as curl_requests

logger = logging.getLogger(__name__)


BUILD_ID_PATTERN = re.compile(r"https://[^/]+/_next/static/([a-zA-Z0-9]+)/_ssgManifest\.js")


class FetchError(Exception):
    """Raised when a storefront request fails or returns something unusable."""


class BuildIdNotFound(FetchError):
    """Raised when the home page carries no recognisable build id."""


@dataclass(frozen=True)
class Variant:
    id: str
    amount: int = 0
    currency: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Variant":
        price = data.get("displayPrice") or {}
        if not isinstance(price, dict):
            raise TypeError(f"displayPrice is not an object: {price!r}")
        try:
            amount = int(price.get("amount") or 0)
        except (TypeError, ValueError):
            amount = 0
        return cls(
            id=str(data.get("id") or ""),
            amount=amount,
            currency=str(price.get("currency") or ""),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "displayPrice": {"amount": self.amount, "currency": self.currency},
        }


@dataclass(frozen=True)
class Product:
    id: str
    title: str = ""
    short_description: str = ""
    slug: str = ""
    thumbnail_url: str = ""
    variants: Tuple[Variant, ...] = field(default_factory=tuple)

    @property
    def first_variant(self) -> Optional[Variant]:
        return self.variants[0] if self.variants else None

    @classmethod
    def from_dict(cls, data: dict) -> "Product":
        thumb = data.get("thumbnail") or {}
        raw_variants = data.get("variants") or []
        if not isinstance(raw_variants, list):
            raise TypeError(f"variants is not a list: {raw_variants!r}")
        return cls(
            id=str(data.get("id") or ""),
            title=str(data.get("title") or ""),
            short_description=str(data.get("shortDescription") or ""),
            slug=str(data.get("slug") or ""),
            thumbnail_url=str(thumb.get("url") or "") if isinstance(thumb, dict) else "",
            variants=tuple(Variant.from_dict(v) for v in raw_variants if isinstance(v, dict)),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "shortDescription": self.short_description,
            "slug": self.slug,
            "thumbnail": {"url": self.thumbnail_url},
            "variants": [v.to_dict() for v in self.variants],
        }


def parse_products(items: Iterable[Any], source: str = "response") -> List[Product]:
    """Decode product dicts, skipping entries that are not objects or have no id."""
    out: List[Product] = []
    for raw in items:
        if not isinstance(raw, dict):
            logger.warning("Skipping non-object product entry in %s: %r", source, raw)
            continue
        product = Product.from_dict(raw)
        if not product.id:
            logger.warning("Skipping product without id in %s (title=%r)", source, product.title)
            continue
        out.append(product)
    return out


def extract_build_id(html: str) -> str:
    """Return the Next.js build id referenced by the storefront HTML."""
    match = BUILD_ID_PATTERN.search(html or "")
    if not match:
        raise BuildIdNotFound("failed to extract build ID from response")
    return match.group(1)


def _flatten_subcategories(data: Any) -> List[Any]:
    if not isinstance(data, dict):
        raise FetchError("unexpected response shape: top level is not an object")
    page_props = data.get("pageProps") or {}
    if not isinstance(page_props, dict):
        raise FetchError("unexpected response shape: pageProps is not an object")
    subs = page_props.get("subCategories") or []
    if not isinstance(subs, list):
        raise FetchError("unexpected response shape: subCategories is not a list")

    items: List[Any] = []
    for sub in subs:
        if not isinstance(sub, dict):
            continue
        products = sub.get("products") or []
        if not isinstance(products, list):
            raise FetchError("unexpected response shape: products is not a list")
        items.extend(products)
    return items


class StorefrontClient:
    """Talks to the storefront's Next.js data API.

    ``discover_build_id`` must succeed before ``fetch_category`` can be used;
    the build id and the data URL derived from it are cached until the next
    discovery.
    """

    def __init__(self, session: curl_requests.Session, home_url: str, timeout: float = 10) -> None:
        self.session = session
        self.home_url = home_url.rstrip("/")
        self.timeout = timeout
        self.build_id: Optional[str] = None
        self.data_url: Optional[str] = None

        parsed = urlparse(self.home_url)
        self._origin = f"{parsed.scheme}://{parsed.netloc}"
        self._locale_path = parsed.path.rstrip("/")
        parts = [p for p in self._locale_path.split("/") if p]
        self._store = parts[0] if len(parts) >= 1 else "us"
        self._language = parts[1] if len(parts) >= 2 else "en"

    def data_url_for(self, build_id: str) -> str:
        return f"{self._origin}/_next/data/{build_id}{self._locale_path}.json"

    def _get(self, url: str, **kwargs: Any) -> Any:
        try:
            resp = self.session.get(url, timeout=self.timeout, **kwargs)
        except curl_requests.RequestsError as e:
            raise FetchError(f"request to {url} failed: {e}") from e
        if resp.status_code != 200:
            raise FetchError(f"unexpected status code {resp.status_code} from {url}")
        return resp

    def discover_build_id(self) -> str:
        resp = self._get(self.home_url)
        build_id = extract_build_id(resp.text)
        self.build_id = build_id
        self.data_url = self.data_url_for(build_id)
        logger.info("Extracted build ID %s", build_id)
        return build_id

    def fetch_category(self, category: str, build_id: Optional[str] = None) -> List[Product]:
        """Return every product listed under *category*, in source order."""
        if build_id and build_id != self.build_id:
            base = self.data_url_for(build_id)
        elif self.data_url:
            base = self.data_url
        else:
            raise FetchError("no build ID discovered yet")

        params = {"category": category, "store": self._store, "language": self._language}
        logger.info("Fetching products for category %s", category)
        resp = self._get(base, params=params)
        try:
            data = resp.json()
        except ValueError as e:
            raise FetchError(f"failed to decode response for {category}: {e}") from e

        try:
            products = parse_products(_flatten_subcategories(data), source=f"category {category}")
        except (TypeError, AttributeError, ValueError) as e:
            raise FetchError(f"failed to decode products for {category}: {e}") from e
        logger.debug("Category %s returned %d products", category, len(products))
        return products


__all__ = [
    "BUILD_ID_PATTERN",
    "BuildIdNotFound",
    "FetchError",
    "Product",
    "StorefrontClient",
    "Variant",
    "extract_build_id",
    "parse_products",
]
