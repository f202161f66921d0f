"""Main entry point - runs the web interface and imports shared links as they arrive."""

from __future__ import annotations

import logging
import signal
import sys
import threading
from queue import Empty, Queue

from .config import get_db_path, load_config, load_shared_urls
from .debug_log import events as engine_events
from .http_client import HttpClient
from .resolver import CourseResolver
from .web.app import run_web_server

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def _process_inbox(resolver: CourseResolver, db_path) -> None:
    """Import every pending shared link."""
    if not load_shared_urls(db_path):
        return
    results = resolver.import_shared_urls(db_path)
    ok = sum(1 for r in results if r.ok)
    logger.info("Imported %d of %d shared link(s)", ok, len(results))
    engine_events.add(f"Imported {ok}/{len(results)} shared link(s)")


def main() -> int:
    """Run the course import service."""
    config = load_config()
    db_path = get_db_path()
    share_queue: Queue = Queue()

    client = HttpClient(config)
    resolver = CourseResolver(client, config, on_event=engine_events)

    # Start web server in background
    web_thread = threading.Thread(
        target=run_web_server,
        kwargs={
            "host": "0.0.0.0",
            "port": config.web_port,
            "db_path": db_path,
            "share_queue": share_queue,
            "resolver": resolver,
        },
        daemon=True,
    )
    web_thread.start()
    logger.info("Web interface at http://0.0.0.0:%d", config.web_port)

    def shutdown(signum=None, frame=None):
        logger.info("Shutting down...")
        client.close()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    # Links shared while we were down
    _process_inbox(resolver, db_path)

    # Main loop: wake on each shared link, drain the queue, then import the inbox once
    logger.info("Ready. Share a YouTube link to import it.")
    while True:
        try:
            share_queue.get(timeout=1.0)
            while True:
                try:
                    share_queue.get_nowait()
                except Empty:
                    break
        except Empty:
            continue

        _process_inbox(resolver, db_path)


if __name__ == "__main__":
    sys.exit(main())
