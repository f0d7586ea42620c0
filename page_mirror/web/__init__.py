"""
Web module for the page mirror.

Provides a Flask-based preview server for mirrored pages.
"""

from .app import create_app, run_app

__all__ = ["create_app", "run_app"]
