"""
UniFi store monitor package.

This package contains modules for polling the UniFi store's Next.js data
API, persisting the known-product catalog, notifying Discord and the catalog
API about new products, and serving the catalog over HTTP.
"""

__all__ = [
    "catalog_push",
    "config",
    "db",
    "main",
    "monitor",
    "notifier",
    "scraper",
    "server",
    "store",
    "utils",
]
