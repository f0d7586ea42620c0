"""
Page scraper module.

Orchestrates one mirror run: scanning the document, downloading every asset
through the worker pool, and rewriting the document to use the local copies.
"""

import os
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .downloader import AssetDownloader, AssetFetcher
from .pool import DownloadPool, PoolReport, validate_workers
from .progress import ProgressCallback
from .rewrite import ReferenceRewriter, add_error_suppression_script
from .scanner import AssetScanner
from .storage import FileStorage
from .transform import ContentTransformer, strip_source_maps
from ..utils.constants import (
    DEFAULT_DOCUMENT_NAME,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    DEFAULT_WORKERS,
    MAX_ATTEMPTS,
    PROGRESS_INTERVAL,
    RETRY_BASE_DELAY,
)
from ..utils.log import get_logger


@dataclass
class MirrorSummary:
    """Run statistics for the caller to display."""

    succeeded: int = 0
    failed: int = 0
    duration_seconds: float = 0.0
    errors: List[Dict] = field(default_factory=list)


@dataclass
class MirrorResult:
    """Rewritten document plus what it took to produce it."""

    document: str
    summary: MirrorSummary
    asset_map: Dict[str, str] = field(default_factory=dict)


@dataclass
class ScrapeResult:
    """Result of fetching and mirroring a page by URL."""

    url: str
    document_path: str
    summary: MirrorSummary


class PageScraper:
    """
    Mirrors a single page into an output directory.

    Coordinates the scanner, the download pool, the content transformer and
    the rewriter.
    """

    def __init__(
        self,
        output_dir: str,
        workers: int = DEFAULT_WORKERS,
        timeout: int = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_BASE_DELAY,
        on_progress: Optional[ProgressCallback] = None,
        progress_interval: float = PROGRESS_INTERVAL,
        suppress_errors: bool = True,
        fetcher: Optional[AssetFetcher] = None,
        storage: Optional[FileStorage] = None
    ):
        """
        Initialize the page scraper.

        Args:
            output_dir: Directory the page and its assets are saved in
            workers: Number of parallel downloads (1-100)
            timeout: Per-request timeout in seconds
            user_agent: User agent string for requests
            max_attempts: Attempts per asset before giving up
            retry_delay: Base delay between attempts in seconds
            on_progress: Optional ``callback(completed, total)``
            progress_interval: Minimum seconds between progress callbacks
            suppress_errors: Inject the offline error suppression script
            fetcher: Transport to use instead of a fresh aiohttp session
            storage: Storage sink to use instead of writing to output_dir
        """
        self.output_dir = os.path.abspath(output_dir)
        self.workers = validate_workers(workers)
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.on_progress = on_progress
        self.progress_interval = progress_interval
        self.suppress_errors = suppress_errors

        self.logger = get_logger("scraper")
        self.scanner = AssetScanner()
        self.rewriter = ReferenceRewriter(self.output_dir)
        self.storage = storage or FileStorage(self.output_dir)
        self._fetcher = fetcher

    async def mirror(self, document: str, base_url: str) -> MirrorResult:
        """
        Download every asset of a document and rewrite it for offline use.

        Args:
            document: HTML text of the page
            base_url: URL the page was fetched from

        Returns:
            MirrorResult with the rewritten document and run summary
        """
        if self._fetcher is not None:
            return await self._mirror(document, base_url, self._fetcher)

        async with self._create_fetcher() as fetcher:
            return await self._mirror(document, base_url, fetcher)

    async def scrape(self, url: str, document_name: str = DEFAULT_DOCUMENT_NAME) -> ScrapeResult:
        """
        Fetch a page by URL, mirror it, and save the document.

        Args:
            url: Page URL
            document_name: File name of the saved document, relative to
                the output directory

        Returns:
            ScrapeResult with the saved document path and run summary

        Raises:
            FetchError: If the page itself cannot be downloaded
            StorageError: If the document cannot be written
        """
        if self._fetcher is not None:
            return await self._scrape(url, document_name, self._fetcher)

        async with self._create_fetcher() as fetcher:
            return await self._scrape(url, document_name, fetcher)

    def _create_fetcher(self) -> AssetFetcher:
        return AssetFetcher(
            timeout=self.timeout,
            concurrency=self.workers,
            user_agent=self.user_agent
        )

    async def _scrape(self, url: str, document_name: str, fetcher: AssetFetcher) -> ScrapeResult:
        self.logger.info(f"Fetching {url}")
        response = await fetcher.fetch(url)

        result = await self._mirror(response.text(), response.url, fetcher)
        document_path = self.storage.put(document_name, result.document)

        self.logger.info(f"Saved page to {document_path}")
        return ScrapeResult(url=response.url, document_path=document_path, summary=result.summary)

    async def _mirror(self, document: str, base_url: str, fetcher: AssetFetcher) -> MirrorResult:
        start_time = time.time()

        scan = self.scanner.scan(document, base_url)
        self.logger.info(
            f"Found {len(scan.jobs)} assets to download with {self.workers} workers"
        )

        transformer = ContentTransformer()
        downloader = AssetDownloader(fetcher, self.storage, transformer)
        pool = DownloadPool(
            downloader.download,
            workers=self.workers,
            max_attempts=self.max_attempts,
            retry_delay=self.retry_delay,
            on_progress=self.on_progress,
            progress_interval=self.progress_interval
        )

        await pool.start()
        for job in scan.jobs:
            await pool.submit(job)

        # What inline scripts reference is downloaded like any other asset.
        # The literal is each job's origin, so the rewriter localizes it in
        # the document only if the download succeeds.
        for script in scan.inline_scripts:
            for job in transformer.transform_js(script, base_url).jobs:
                await pool.submit(job)

        pool.close()
        report = await pool.collect()

        succeeded = {result.job.url for result in report.results if result.success}
        downloader.localize_stored(succeeded)

        document = strip_source_maps(document)
        document = self.rewriter.rewrite(document, report.asset_map)
        if self.suppress_errors:
            document = add_error_suppression_script(document)

        summary = self._summarize(report, time.time() - start_time)
        return MirrorResult(document=document, summary=summary, asset_map=report.asset_map)

    def _summarize(self, report: PoolReport, duration: float) -> MirrorSummary:
        errors = [
            {
                'url': result.job.url,
                'kind': result.job.kind,
                'error': result.error,
                'attempts': result.attempts,
            }
            for result in report.failures
        ]
        return MirrorSummary(
            succeeded=report.succeeded,
            failed=report.failed,
            duration_seconds=duration,
            errors=errors
        )
