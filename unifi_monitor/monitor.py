"""The polling loop: discover build id, fetch categories, reconcile, notify, persist."""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Sequence

from .scraper import FetchError, Product, StorefrontClient
from .store import ProductStore

logger = logging.getLogger(__name__)


class Sink(Protocol):
    def send_product(self, product: Product) -> None: ...


class MonitorState(enum.Enum):
    STARTING = "starting"
    DISCOVERING_BUILD_ID = "discovering_build_id"
    FETCHING_CATEGORY = "fetching_category"
    RECONCILING = "reconciling"
    PERSISTING = "persisting"
    SLEEPING = "sleeping"
    SHUTTING_DOWN = "shutting_down"


@dataclass
class CycleResult:
    build_id: Optional[str] = None
    fetched: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    new_products: List[Product] = field(default_factory=list)
    saves: int = 0


class Monitor:
    def __init__(
        self,
        store: ProductStore,
        client: StorefrontClient,
        categories: Sequence[str],
        *,
        notifier: Optional[Sink] = None,
        catalog_push: Optional[Sink] = None,
        save_batch_size: int = 2,
        poll_interval: float = 30,
        save_interval: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.client = client
        self.categories = list(categories)
        self.notifier = notifier
        self.catalog_push = catalog_push
        self.save_batch_size = save_batch_size
        self.poll_interval = poll_interval
        self.save_interval = save_interval
        self._clock = clock
        self._stop = threading.Event()
        self._last_periodic = clock()
        self.state = MonitorState.STARTING

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        self.state = MonitorState.SHUTTING_DOWN
        self._stop.set()

    def _dispatch(self, product: Product) -> None:
        # chat first, then the catalog API; one failing never skips the other
        if self.notifier is not None:
            try:
                self.notifier.send_product(product)
            except Exception:
                logger.exception("Failed to send Discord notification for %s", product.id)
        if self.catalog_push is not None:
            try:
                self.catalog_push.send_product(product)
            except Exception:
                logger.exception("Failed to send product %s to API", product.id)

    def _save(self, reason: str) -> bool:
        self.state = MonitorState.PERSISTING
        logger.info("Saving known products (%s, %d pending)", reason, self.store.pending_count())
        try:
            self.store.save()
        except OSError:
            logger.exception("Failed to save known products")
            return False
        return True

    def _maybe_save_batch(self, result: CycleResult) -> None:
        if self.store.pending_count() >= self.save_batch_size:
            if self._save("batch threshold"):
                result.saves += 1

    def _maybe_save_periodic(self, result: CycleResult) -> None:
        now = self._clock()
        if now - self._last_periodic < self.save_interval:
            return
        self._last_periodic = now
        if self.store.pending_count() > 0:
            if self._save("periodic"):
                result.saves += 1

    def run_cycle(self) -> CycleResult:
        """Run one full pass over every category (without the trailing sleep)."""
        result = CycleResult()

        self.state = MonitorState.DISCOVERING_BUILD_ID
        try:
            result.build_id = self.client.discover_build_id()
        except FetchError as e:
            logger.error("Failed to fetch build ID: %s", e)
            return result

        for category in self.categories:
            if self.stopped:
                self.state = MonitorState.SHUTTING_DOWN
                return result

            self.state = MonitorState.FETCHING_CATEGORY
            try:
                products = self.client.fetch_category(category, result.build_id)
            except FetchError as e:
                logger.error("Failed to fetch products for %s: %s", category, e)
                result.failed.append(category)
                continue
            result.fetched.append(category)

            self.state = MonitorState.RECONCILING
            new = self.store.reconcile(products)
            for product in new:
                logger.info("New product found: %s (id=%s)", product.title, product.id)
                self._dispatch(product)
            result.new_products.extend(new)

            self._maybe_save_batch(result)

        self._maybe_save_batch(result)
        self._maybe_save_periodic(result)

        if not result.new_products:
            logger.info("No new products this cycle (%d categories fetched).", len(result.fetched))
        return result

    def run(self) -> None:
        logger.info("Starting monitor over %d categories", len(self.categories))
        while not self.stopped:
            try:
                self.run_cycle()
            except Exception:
                logger.exception("Unexpected error during monitor cycle")
            if self.stopped:
                break
            self.state = MonitorState.SLEEPING
            logger.info("Sleeping for %s seconds...", self.poll_interval)
            self._stop.wait(self.poll_interval)
        self.state = MonitorState.SHUTTING_DOWN
        logger.info("Monitor loop stopped")


__all__ = ["CycleResult", "Monitor", "MonitorState", "Sink"]
