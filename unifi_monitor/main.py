from __future__ import annotations

import logging
import signal
import sys
import threading
from typing import List, Optional

from . import config
from .catalog_push import CatalogPush
from .monitor import Monitor
from .notifier import DiscordNotifier
from .scraper import StorefrontClient
from .server import QueryServer
from .store import ProductStore
from .utils import get_http_session, get_stealth_session


def setup_logging(level_name: str = "INFO") -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logging.getLogger().setLevel(level)


def main(argv: Optional[List[str]] = None) -> int:
    """Initialise and run the monitor until SIGINT/SIGTERM."""
    args = sys.argv[1:] if argv is None else argv
    config_path = args[0] if args else "config.yml"

    setup_logging()
    logger = logging.getLogger(__name__)
    logger.info("Initializing...")

    try:
        cfg = config.load(config_path)
    except config.ConfigError as e:
        logger.critical("Failed to load configuration: %s", e)
        return 1
    setup_logging(cfg.log_level)

    store = ProductStore(cfg.products_file)
    store.load()

    stealth = get_stealth_session()
    sink_session = get_http_session()

    monitor = Monitor(
        store,
        StorefrontClient(stealth, cfg.home_url, timeout=cfg.request_timeout),
        cfg.categories,
        notifier=DiscordNotifier(cfg.discord_webhook_url, sink_session, timeout=cfg.request_timeout),
        catalog_push=CatalogPush(cfg.catalog_push_url, cfg.jwt, sink_session, timeout=cfg.request_timeout),
        save_batch_size=cfg.save_batch_size,
        poll_interval=cfg.poll_interval_seconds,
        save_interval=cfg.save_interval_seconds,
    )

    api: Optional[QueryServer] = None
    if cfg.server_enabled:
        api = QueryServer(store, cfg.host, cfg.port, heartbeat_seconds=cfg.sse_heartbeat_seconds)
        try:
            api.start()
        except OSError as e:
            logger.critical("Failed to start API server on %s:%d: %s", cfg.host, cfg.port, e)
            return 1
    else:
        logger.info("API server disabled.")

    shutdown = threading.Event()

    def _on_signal(signum, frame):
        logger.info("Received shutdown signal (%s)", signal.Signals(signum).name)
        shutdown.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    t_monitor = threading.Thread(target=monitor.run, name="monitor", daemon=True)
    t_monitor.start()

    while not shutdown.wait(1.0):
        if not t_monitor.is_alive():
            logger.error("Monitor thread exited unexpectedly")
            break

    monitor.stop()
    # an in-flight fetch may still reconcile; let it land before the final save
    t_monitor.join(timeout=cfg.request_timeout * 2)
    if t_monitor.is_alive():
        logger.warning("Monitor thread still busy after %ss; saving anyway", cfg.request_timeout * 2)
    try:
        store.save()
    except OSError:
        logger.exception("Failed to save products during shutdown")
    if api is not None:
        api.stop()
    stealth.close()
    sink_session.close()
    logger.info("Shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
