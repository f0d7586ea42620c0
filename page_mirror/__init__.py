"""
Page Mirror - mirror a single web page for offline viewing.

This package fetches a page and every stylesheet, script, image, font and icon
it references, rewrites the references to local paths, and saves the result.
"""

__version__ = "1.0.0"
__author__ = "Page Mirror Team"
