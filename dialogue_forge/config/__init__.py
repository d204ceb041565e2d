"""Config package exports."""

from .log_setup import LOG_FORMAT, configure_logging
from .toggles import AllowedLogLevel, Settings, ensure_database_path, get_settings

__all__ = [
    "Settings",
    "AllowedLogLevel",
    "LOG_FORMAT",
    "configure_logging",
    "ensure_database_path",
    "get_settings",
]
