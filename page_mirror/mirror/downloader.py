"""
Asset downloader for fetching and saving page resources.

Uses a single aiohttp session, shared by every pool worker, so connections
to the same host are reused.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

import aiohttp
from aiohttp import ClientTimeout, ClientError

from .jobs import AssetKind, DownloadOutcome, Job
from .storage import FileStorage, StorageError
from .transform import ContentTransformer, TransformResult
from ..utils.constants import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT, DEFAULT_WORKERS
from ..utils.log import get_logger
from ..utils.paths import get_asset_path


class FetchError(Exception):
    """A download attempt failed. Always retryable."""


@dataclass
class FetchResponse:
    """Body and metadata of a successful response."""

    url: str
    body: bytes
    content_type: Optional[str] = None
    charset: Optional[str] = None

    def text(self) -> str:
        try:
            return self.body.decode(self.charset or 'utf-8', errors='replace')
        except LookupError:
            return self.body.decode('utf-8', errors='replace')


class AssetFetcher:
    """
    HTTP transport shared by all workers.

    Use as an async context manager, or call ``start()`` / ``close()``.
    """

    def __init__(
        self,
        timeout: int = DEFAULT_TIMEOUT,
        concurrency: int = DEFAULT_WORKERS,
        user_agent: str = DEFAULT_USER_AGENT
    ):
        """
        Initialize the fetcher.

        Args:
            timeout: Per-request timeout in seconds
            concurrency: Expected number of parallel requests (per host cap)
            user_agent: User agent string for requests
        """
        self.timeout = ClientTimeout(total=timeout)
        self.concurrency = concurrency
        self.user_agent = user_agent
        self.logger = get_logger("downloader")
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        if self._session is None:
            connector = aiohttp.TCPConnector(
                limit=max(100, self.concurrency),
                limit_per_host=self.concurrency
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent}
            )

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "AssetFetcher":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def fetch(self, url: str) -> FetchResponse:
        """
        Download a URL.

        Args:
            url: Absolute URL

        Returns:
            FetchResponse for a 2xx response

        Raises:
            FetchError: On transport errors, timeouts, non-2xx statuses and
                body read errors
        """
        if self._session is None:
            await self.start()

        try:
            async with self._session.get(url, allow_redirects=True) as response:
                if not 200 <= response.status < 300:
                    raise FetchError(f"HTTP {response.status} for {url}")

                body = await response.read()
                return FetchResponse(
                    url=str(response.url),
                    body=body,
                    content_type=response.content_type,
                    charset=response.charset
                )
        except ClientError as e:
            raise FetchError(f"Client error for {url}: {e}") from e
        except asyncio.TimeoutError as e:
            raise FetchError(f"Timeout for {url}") from e


class AssetDownloader:
    """
    Job handler run by the pool workers.

    Fetches the asset, passes stylesheets and scripts through the content
    transformer and persists the result through the storage sink. Local
    references inside stylesheets and scripts are written afterwards by
    ``localize_stored()``, once it is known which assets were downloaded.
    """

    def __init__(
        self,
        fetcher: AssetFetcher,
        storage: FileStorage,
        transformer: ContentTransformer
    ):
        self.fetcher = fetcher
        self.storage = storage
        self.transformer = transformer
        self.logger = get_logger("downloader")

        # (storage path, transform result) of bodies with pending substitutions
        self._pending: List[Tuple[str, TransformResult]] = []

    async def download(self, job: Job) -> DownloadOutcome:
        """
        Fetch, transform and store one job.

        Args:
            job: Job to run

        Returns:
            DownloadOutcome with the stored path and any jobs discovered in
            the content

        Raises:
            FetchError: The download failed (retryable)
            StorageError: The file could not be written
        """
        response = await self.fetcher.fetch(job.url)
        relative_path = job.target or get_asset_path(response.url, job.kind, response.content_type)

        data = response.body
        result = None

        if job.kind == AssetKind.STYLE:
            result = self.transformer.transform_css(response.text(), response.url)
        elif job.kind == AssetKind.SCRIPT:
            result = self.transformer.transform_js(response.text(), job.base_url)

        if result is not None:
            data = result.text

        local_path = self.storage.put(relative_path, data)
        self.logger.debug(f"Downloaded: {job.url} -> {local_path}")

        if result is not None and result.substitutions:
            self._pending.append((relative_path, result))

        return DownloadOutcome(
            local_path=local_path,
            discovered=result.jobs if result is not None else []
        )

    def localize_stored(self, succeeded: Set[str]) -> int:
        """
        Point stored stylesheets and scripts at the assets that were saved.

        References to assets that failed keep their original URL. A file
        that cannot be rewritten is left as first stored.

        Args:
            succeeded: Canonical URLs of the jobs that succeeded

        Returns:
            Number of files rewritten
        """
        updated = 0
        for relative_path, result in self._pending:
            text = result.localized(succeeded)
            if text == result.text:
                continue
            try:
                self.storage.put(relative_path, text)
            except StorageError as e:
                self.logger.warning(f"Could not localize {relative_path}: {e}")
                continue
            updated += 1

        self.logger.debug(f"Localized references in {updated} stored files")
        return updated
