"""CLI helper to initialize the Dialogue Forge graph database."""

from __future__ import annotations

import logging

from ...config import configure_logging
from .sqlite import SQLiteGraphStore

logger = logging.getLogger(__name__)


def main() -> None:
    configure_logging()
    store = SQLiteGraphStore()
    store.migrate()
    logger.info("Graph database ready at %s", store.path)
    print(f"SQLite database ready at {store.path}")


if __name__ == "__main__":
    main()
