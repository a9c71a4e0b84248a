"""In-memory known-product state shared by the monitor loop and the API server."""

from __future__ import annotations

import logging
import os
import threading
from typing import Dict, Iterable, List

from . import db
from .scraper import Product

logger = logging.getLogger(__name__)


class ProductStore:
    """Known products plus the buffer of products not yet written to disk.

    A single lock guards both structures.  Callers must not hold it across
    network calls; ``reconcile`` returns the new products so that
    notifications can be sent after the lock is released.
    """

    def __init__(self, products_file: str | os.PathLike) -> None:
        self.products_file = products_file
        self.initialized = False
        self._lock = threading.Lock()
        self._known: Dict[str, Product] = {}
        self._pending: List[Product] = []

    def load(self) -> int:
        logger.info("Loading known products from %s", self.products_file)
        products, initialized = db.load_products(self.products_file)
        with self._lock:
            self._known.update(products)
            self.initialized = initialized
            count = len(self._known)
        if not initialized:
            logger.info("Catalog not yet initialized; every product seen will be treated as new")
        return count

    def reconcile(self, products: Iterable[Product]) -> List[Product]:
        """Record unseen products as known and pending; return them in order."""
        new: List[Product] = []
        with self._lock:
            for product in products:
                if product.id in self._known:
                    continue
                self._known[product.id] = product
                self._pending.append(product)
                new.append(product)
        return new

    def is_known(self, product_id: str) -> bool:
        with self._lock:
            return product_id in self._known

    def known_count(self) -> int:
        with self._lock:
            return len(self._known)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def get_products(self) -> List[Product]:
        """Snapshot of every known product (unordered)."""
        with self._lock:
            return list(self._known.values())

    def get_pending(self) -> List[Product]:
        with self._lock:
            return list(self._pending)

    def save(self) -> int:
        """Persist the whole known set and clear the pending buffer.

        The lock is held for the duration of the write so a save never
        interleaves with a reconciliation.  On ``OSError`` the pending buffer
        is left untouched and the error propagates.
        """
        with self._lock:
            written = db.save_products(self.products_file, self._known.values())
            self._pending.clear()
            self.initialized = True
        logger.info("Successfully saved %d products", written)
        return written


__all__ = ["ProductStore"]
