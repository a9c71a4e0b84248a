"""JSON file persistence for the known-product catalog."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, Tuple

from .scraper import Product, parse_products

logger = logging.getLogger(__name__)


def load_products(path: str | os.PathLike) -> Tuple[Dict[str, Product], bool]:
    """Read the catalog snapshot at *path*.

    Returns ``(products_by_id, initialized)``.  A missing or empty file is
    reported as not initialized (a missing one is created); unreadable or
    malformed content is logged and treated the same way.  Never raises for
    file problems.
    """
    p = Path(path)
    if not p.exists():
        logger.info("Products file %s not found, creating new file", p)
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            p.touch()
        except OSError:
            logger.exception("Failed to create products file %s", p)
        return {}, False

    try:
        text = p.read_text(encoding="utf-8")
    except OSError:
        logger.exception("Failed to read products file %s", p)
        return {}, False

    if not text.strip():
        logger.info("Products file %s is empty", p)
        return {}, False

    try:
        raw = json.loads(text)
    except ValueError:
        logger.error("Failed to decode products file %s; starting with an empty catalog", p, exc_info=True)
        return {}, False
    if not isinstance(raw, list):
        logger.error("Products file %s does not contain a JSON array; starting with an empty catalog", p)
        return {}, False

    try:
        parsed = parse_products(raw, source=str(p))
    except (TypeError, AttributeError, ValueError):
        logger.error("Products file %s holds a malformed entry; starting with an empty catalog", p, exc_info=True)
        return {}, False

    products: Dict[str, Product] = {}
    for product in parsed:
        # first entry wins if the file somehow holds duplicates
        products.setdefault(product.id, product)
    logger.info("Loaded %d known products", len(products))
    return products, True


def save_products(path: str | os.PathLike, products: Iterable[Product]) -> int:
    """Write the full catalog to *path* as an indented JSON array.

    Products are sorted by id so consecutive saves diff cleanly.  The data is
    written to a temp file in the same directory and moved into place.
    Raises ``OSError`` on failure.  Returns the number of products written.
    """
    p = Path(path)
    rows = [prod.to_dict() for prod in sorted(products, key=lambda prod: prod.id)]
    payload = json.dumps(rows, indent=4, ensure_ascii=False) + "\n"

    p.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{p.name}.", suffix=".tmp", dir=str(p.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(payload)
            fh.flush()
            os.fsync(fh.fileno())
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, p)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
    return len(rows)


__all__ = ["load_products", "save_products"]
