"""
Asset scanner for turning an HTML document into download jobs.

Uses BeautifulSoup for HTML parsing to find all linked resources. No network
access happens here.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from .jobs import AssetKind, Job
from ..utils.log import get_logger
from ..utils.paths import (
    canonical_url,
    has_font_extension,
    is_absolute_http,
    is_fetchable,
    resolve_url,
)


# Meta tags whose content is an image URL, by attribute
IMAGE_META_PROPERTIES = ('og:image', 'og:image:secure_url')
IMAGE_META_NAMES = ('twitter:image', 'msapplication-TileImage')

ICON_RELS = ('icon', 'apple-touch-icon', 'apple-touch-icon-precomposed', 'mask-icon')

# <link rel="preload" as="..."> to asset kind
PRELOAD_KINDS = {
    'style': AssetKind.STYLE,
    'script': AssetKind.SCRIPT,
    'font': AssetKind.FONT,
    'image': AssetKind.IMAGE,
    'fetch': AssetKind.JSON,
}


@dataclass
class ScanResult:
    """Container for everything found in one document."""

    jobs: List[Job] = field(default_factory=list)

    # Bodies of <script> elements without src, searched for embedded stylesheets
    inline_scripts: List[str] = field(default_factory=list)

    def jobs_of_kind(self, kind: str) -> List[Job]:
        return [job for job in self.jobs if job.kind == kind]


class AssetScanner:
    """
    Collects the download jobs for a single page.

    Each canonical URL yields one job. Further references to the same URL
    are kept as aliases of that job, so all of them get rewritten.
    """

    # CSS url() pattern
    CSS_URL_PATTERN = re.compile(r'url\s*\(\s*["\']?([^"\')\s]+)["\']?\s*\)')

    # background-image declarations in style attributes
    BACKGROUND_IMAGE_PATTERN = re.compile(
        r'background-image\s*:\s*url\s*\(\s*["\']?([^"\')\s]+)["\']?\s*\)',
        re.IGNORECASE
    )

    def __init__(self):
        self.logger = get_logger("scanner")

    def scan(self, html: str, base_url: str) -> ScanResult:
        """
        Scan an HTML document for assets.

        Args:
            html: HTML content to parse
            base_url: URL of the page (for resolving relative URLs)

        Returns:
            ScanResult with deduplicated jobs and inline scripts
        """
        try:
            soup = BeautifulSoup(html, 'lxml')
        except Exception:
            # Fallback to html.parser if lxml fails
            soup = BeautifulSoup(html, 'html.parser')

        state = _ScanState(base_url)

        self._scan_links(soup, state)
        self._scan_scripts(soup, state)
        self._scan_images(soup, state)
        self._scan_meta(soup, state)
        self._scan_inline_styles(soup, state)
        self._scan_style_blocks(soup, state)

        result = ScanResult(jobs=state.jobs(), inline_scripts=state.inline_scripts)
        self.logger.debug(
            f"Scanned {base_url}: {len(result.jobs)} assets, "
            f"{len(result.inline_scripts)} inline scripts"
        )
        return result

    def _scan_links(self, soup: BeautifulSoup, state: "_ScanState") -> None:
        """Stylesheets, preloads, manifests and icons."""
        for link in soup.find_all('link', href=True):
            href = link.get('href', '').strip()
            if not href:
                continue

            rel_value = link.get('rel', [])
            # BeautifulSoup returns rel as a list of values, e.g.
            # <link rel="shortcut icon"> becomes ['shortcut', 'icon']
            if isinstance(rel_value, list):
                rel_values = [v.lower() for v in rel_value]
            else:
                rel_values = rel_value.lower().split()

            if 'stylesheet' in rel_values:
                state.add(href, AssetKind.STYLE)
            elif 'preload' in rel_values:
                preload_as = (link.get('as') or 'style').strip().lower()
                kind = PRELOAD_KINDS.get(preload_as)
                if kind is not None:
                    state.add(href, kind)
            elif 'manifest' in rel_values or any(rel in rel_values for rel in ICON_RELS):
                state.add(href, AssetKind.MANIFEST)

    def _scan_scripts(self, soup: BeautifulSoup, state: "_ScanState") -> None:
        """External scripts become jobs, inline ones are kept for rewriting."""
        for script in soup.find_all('script'):
            src = script.get('src', '').strip()
            if src:
                state.add(src, AssetKind.SCRIPT)
            elif script.string and script.string.strip():
                state.inline_scripts.append(str(script.string))

    def _scan_images(self, soup: BeautifulSoup, state: "_ScanState") -> None:
        """Image sources including srcset; absolute URLs only."""
        for img in soup.find_all('img'):
            for attr in ('src', 'data-src'):
                src = img.get(attr, '').strip()
                if is_absolute_http(src):
                    state.add(src, AssetKind.IMAGE)

            srcset = img.get('srcset', '').strip()
            if srcset:
                self._scan_srcset(srcset, state)

        # <source srcset> in <picture>
        for source in soup.find_all('source', srcset=True):
            srcset = source.get('srcset', '').strip()
            if srcset:
                self._scan_srcset(srcset, state)

    def _scan_srcset(self, srcset: str, state: "_ScanState") -> None:
        for url in self.parse_srcset(srcset):
            if is_absolute_http(url):
                state.add(url, AssetKind.IMAGE)

    def _scan_meta(self, soup: BeautifulSoup, state: "_ScanState") -> None:
        """Social and tile images declared in <meta>."""
        for meta in soup.find_all('meta', content=True):
            prop = meta.get('property', '')
            name = meta.get('name', '')
            if prop not in IMAGE_META_PROPERTIES and name not in IMAGE_META_NAMES:
                continue

            content = meta.get('content', '').strip()
            if is_absolute_http(content):
                state.add(content, AssetKind.IMAGE)

    def _scan_inline_styles(self, soup: BeautifulSoup, state: "_ScanState") -> None:
        """background-image URLs in style attributes; absolute URLs only."""
        for elem in soup.find_all(style=True):
            style = elem.get('style', '')
            for match in self.BACKGROUND_IMAGE_PATTERN.finditer(style):
                url = match.group(1)
                if is_absolute_http(url):
                    state.add(url, AssetKind.IMAGE)

    def _scan_style_blocks(self, soup: BeautifulSoup, state: "_ScanState") -> None:
        """Font URLs in <style> blocks."""
        for style in soup.find_all('style'):
            if not style.string:
                continue
            for match in self.CSS_URL_PATTERN.finditer(style.string):
                url = match.group(1)
                if has_font_extension(url):
                    state.add(url, AssetKind.FONT)

    @staticmethod
    def parse_srcset(srcset: str) -> List[str]:
        """
        Parse a srcset attribute and extract URLs.

        Args:
            srcset: srcset attribute value

        Returns:
            List of URLs from srcset, without descriptors
        """
        urls = []
        for part in srcset.split(','):
            parts = part.split()
            if parts and not parts[0].startswith('data:'):
                urls.append(parts[0])
        return urls


class _ScanState:
    """Jobs collected so far in one pass, keyed by canonical URL."""

    def __init__(self, base_url: str):
        self.base_url = base_url
        self.inline_scripts: List[str] = []
        self._jobs: Dict[str, Job] = {}

    def add(self, ref: str, kind: str) -> Optional[Job]:
        resolved = resolve_url(self.base_url, ref)
        if not is_fetchable(resolved):
            return None

        url = canonical_url(resolved)
        known = self._jobs.get(url)
        if known is not None:
            self._jobs[url] = known.with_alias(ref)
            return None

        job = Job(url=url, kind=kind, origin=ref, base_url=self.base_url)
        self._jobs[url] = job
        return job

    def jobs(self) -> List[Job]:
        return list(self._jobs.values())
