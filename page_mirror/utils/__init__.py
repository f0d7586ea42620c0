"""
Utility modules for the page mirror.

Contains logging, URL and path handling utilities, and constants.
"""

from .log import setup_logger, get_logger
from .paths import resolve_url, canonical_url, get_asset_path, ensure_dir
from .constants import (
    DEFAULT_USER_AGENT,
    DEFAULT_TIMEOUT,
    DEFAULT_WORKERS,
    MAX_WORKERS,
    MAX_ATTEMPTS,
    RETRY_BASE_DELAY,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "resolve_url",
    "canonical_url",
    "get_asset_path",
    "ensure_dir",
    "DEFAULT_USER_AGENT",
    "DEFAULT_TIMEOUT",
    "DEFAULT_WORKERS",
    "MAX_WORKERS",
    "MAX_ATTEMPTS",
    "RETRY_BASE_DELAY",
]
