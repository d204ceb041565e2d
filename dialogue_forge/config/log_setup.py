"""Logging bootstrap for Dialogue Forge entry points."""

from __future__ import annotations

import logging
from typing import Optional

from .toggles import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> int:
    """Configure root logging once and return the numeric level applied."""
    name = (level or get_settings().log_level).upper()
    numeric = logging.getLevelName(name)
    if not isinstance(numeric, int):
        numeric = logging.INFO
    logging.basicConfig(level=numeric, format=LOG_FORMAT)
    logging.getLogger().setLevel(numeric)
    return numeric


__all__ = ["LOG_FORMAT", "configure_logging"]
