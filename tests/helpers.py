"""Fakes shared by the test modules."""

import asyncio
from collections import Counter

from page_mirror.mirror.downloader import FetchError, FetchResponse


class FakeFetcher:
    """
    Stands in for AssetFetcher.

    ``routes`` maps URL -> body or (body, content_type). ``failures`` maps
    URL -> number of attempts that fail before the route answers. Unknown
    URLs always fail.
    """

    def __init__(self, routes=None, failures=None, delay=0.0):
        self.routes = dict(routes or {})
        self.failures = dict(failures or {})
        self.delay = delay
        self.calls = Counter()
        self.order = []
        self.active = 0
        self.max_active = 0

    async def fetch(self, url):
        self.calls[url] += 1
        self.order.append(url)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)

            if self.calls[url] <= self.failures.get(url, 0):
                raise FetchError(f"Simulated failure for {url}")
            if url not in self.routes:
                raise FetchError(f"HTTP 404 for {url}")

            body = self.routes[url]
            content_type = None
            if isinstance(body, tuple):
                body, content_type = body
            if isinstance(body, str):
                body = body.encode('utf-8')
            return FetchResponse(url=url, body=body, content_type=content_type)
        finally:
            self.active -= 1
