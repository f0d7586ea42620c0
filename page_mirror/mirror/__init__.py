"""
Mirror module for single-page offline copies.

Contains components for scanning, downloading, transforming and rewriting.
"""

from .jobs import AssetKind, Job, JobResult
from .scanner import AssetScanner, ScanResult
from .pool import DownloadPool, PoolReport
from .downloader import AssetDownloader, AssetFetcher, FetchError
from .storage import FileStorage, StorageError
from .transform import ContentTransformer
from .rewrite import ReferenceRewriter
from .scraper import PageScraper, MirrorResult, MirrorSummary

__all__ = [
    "AssetKind",
    "Job",
    "JobResult",
    "AssetScanner",
    "ScanResult",
    "DownloadPool",
    "PoolReport",
    "AssetDownloader",
    "AssetFetcher",
    "FetchError",
    "FileStorage",
    "StorageError",
    "ContentTransformer",
    "ReferenceRewriter",
    "PageScraper",
    "MirrorResult",
    "MirrorSummary",
]
