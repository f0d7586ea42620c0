"""
Content transformer for downloaded stylesheets and scripts.

Strips source map references, localizes font URLs in CSS, and resolves
stylesheet URLs embedded in JavaScript. Every resource found this way is
handed back as a Job so it goes through the same pool as everything else.
"""

import posixpath
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from .jobs import AssetKind, Job
from ..utils.constants import ASSETS_DIR
from ..utils.log import get_logger
from ..utils.paths import (
    canonical_url,
    font_target,
    get_asset_path,
    has_font_extension,
    is_fetchable,
    resolve_url,
    url_extension,
)


# /*# sourceMappingURL=app.css.map */ and //# sourceMappingURL=app.js.map
SOURCE_MAP_PATTERN = re.compile(
    r'/\*[#@]\s*sourceMappingURL=.*?\*/|//[#@]\s*sourceMappingURL=[^\r\n]*'
)

# CSS url() pattern
CSS_URL_PATTERN = re.compile(r'url\s*\(\s*["\']?([^"\')\s]+)["\']?\s*\)')

# Quoted URL containing {placeholders}, possibly with JSON-escaped slashes
TEMPLATE_URL_PATTERN = re.compile(
    r'"([^"]*\\?/[^"]*\{[^}]+\}[^"]*\.(?:css|js)(?:\?[^"]*)?)"'
)
PLACEHOLDER_PATTERN = re.compile(r'\{([^}]+)\}')

# Quoted absolute URL ending in a known extension
DIRECT_URL_PATTERN = re.compile(
    r'"(https?:\\?/\\?/[^"]*\.(?:css|js|png|jpg|jpeg|gif|webp|svg)(?:\?[^"]*)?)"'
)

# Placeholders whose value is stored under another field name
PLACEHOLDER_ALIASES = {
    'type': 'consenttype',
}


def strip_source_maps(content: str) -> str:
    """Remove sourceMappingURL comments from CSS or JavaScript."""
    return SOURCE_MAP_PATTERN.sub('', content)


@dataclass(frozen=True)
class Substitution:
    """Replace ``old`` with ``new`` once the job for ``url`` has succeeded."""

    url: str
    old: str
    new: str


def apply_substitutions(
    text: str,
    substitutions: Iterable[Substitution],
    succeeded: Set[str]
) -> str:
    """
    Apply the substitutions whose asset was downloaded.

    Replacement is a single pass, longest match first. References to assets
    that failed stay as they are.

    Args:
        text: Stylesheet or script text
        substitutions: Pending substitutions found in the text
        succeeded: Canonical URLs of the jobs that succeeded

    Returns:
        The localized text
    """
    replacements: Dict[str, str] = {}
    for sub in substitutions:
        if sub.url in succeeded:
            replacements.setdefault(sub.old, sub.new)

    if not replacements:
        return text

    pattern = re.compile('|'.join(
        re.escape(old) for old in sorted(replacements, key=len, reverse=True)
    ))
    return pattern.sub(lambda m: replacements[m.group(0)], text)


@dataclass
class TransformResult:
    """
    Text with source maps removed, the jobs found in it, and the local
    references to write once those jobs are done.
    """

    text: str
    jobs: List[Job] = field(default_factory=list)
    substitutions: List[Substitution] = field(default_factory=list)

    def localized(self, succeeded: Set[str]) -> str:
        return apply_substitutions(self.text, self.substitutions, succeeded)


class ContentTransformer:
    """
    Prepares stylesheet and script bodies for storage.

    One instance serves a whole scrape. It remembers which fonts it has
    already dispatched, independently of the scanner's dedup set.
    """

    def __init__(self):
        self.logger = get_logger("transform")
        self._fonts_seen: Set[str] = set()

    def transform_css(self, css: str, css_url: str) -> TransformResult:
        """
        Find the fonts a stylesheet references.

        Font URLs are resolved against the stylesheet URL. Each one gets a
        substitution to ``fonts/<name>``, relative to the stylesheet's own
        directory, which applies only if the font is downloaded.

        Args:
            css: Stylesheet text
            css_url: URL the stylesheet was downloaded from

        Returns:
            TransformResult with the CSS, new font jobs and substitutions
        """
        css = strip_source_maps(css)
        jobs: List[Job] = []
        substitutions: List[Substitution] = []

        for match in CSS_URL_PATTERN.finditer(css):
            ref = match.group(1)
            if not has_font_extension(ref):
                continue

            resolved = resolve_url(css_url, ref)
            if not is_fetchable(resolved):
                continue

            url = canonical_url(resolved)
            target = font_target(url)
            local_ref = posixpath.relpath(target, ASSETS_DIR)

            if url not in self._fonts_seen:
                self._fonts_seen.add(url)
                jobs.append(Job(
                    url=url,
                    kind=AssetKind.FONT,
                    origin=ref,
                    base_url=css_url,
                    target=target
                ))

            substitutions.append(
                Substitution(url, match.group(0), match.group(0).replace(ref, local_ref))
            )
            # The resolved form may also appear outside url(), e.g. in
            # comments or @import lines
            if resolved != ref:
                substitutions.append(Substitution(url, resolved, local_ref))

        if jobs:
            self.logger.debug(f"Found {len(jobs)} fonts in {css_url}")
        return TransformResult(text=css, jobs=jobs, substitutions=substitutions)

    def transform_js(self, js: str, base_url: str) -> TransformResult:
        """
        Resolve stylesheet URLs embedded in a script.

        Templated URLs such as ``"https:\\/\\/x\\/banner-{banner_id}.css"`` are
        completed from JSON-like fields found in the same script; only fully
        resolved templates are fetched. Quoted absolute ``.css`` URLs are
        fetched as they are. Each literal gets a substitution to the local
        path, relative to the document since scripts load them from the page.

        Args:
            js: Script text
            base_url: URL of the document the script runs in

        Returns:
            TransformResult with the script, new jobs and substitutions
        """
        js = strip_source_maps(js)
        jobs: List[Job] = []
        substitutions: List[Substitution] = []

        for match in TEMPLATE_URL_PATTERN.finditer(js):
            template = match.group(1)
            resolved = self.resolve_template(template.replace('\\/', '/'), js)
            if resolved is None:
                self.logger.debug(f"Unresolved template URL: {template}")
                continue

            ext = url_extension(resolved)
            if ext == '.css':
                kind = AssetKind.STYLE
            elif ext == '.js':
                kind = AssetKind.SCRIPT
            else:
                continue

            job = self._literal_job(resolved, template, base_url, kind)
            if job is not None:
                jobs.append(job)
                substitutions.append(Substitution(job.url, f'"{template}"', f'"{job.target}"'))

        for match in DIRECT_URL_PATTERN.finditer(js):
            literal = match.group(1)
            unescaped = literal.replace('\\/', '/')
            # Templates were handled above; unresolved ones are never fetched
            if '{' in unescaped or url_extension(unescaped) != '.css':
                continue

            job = self._literal_job(unescaped, literal, base_url, AssetKind.STYLE)
            if job is not None:
                jobs.append(job)
                substitutions.append(Substitution(job.url, f'"{literal}"', f'"{job.target}"'))

        return TransformResult(text=js, jobs=jobs, substitutions=substitutions)

    def resolve_template(self, template: str, source: str) -> Optional[str]:
        """
        Fill every ``{name}`` in a template from values in ``source``.

        Args:
            template: URL template with unescaped slashes
            source: Script text to search for values

        Returns:
            The completed URL, or None if any placeholder stays unresolved
        """
        resolved = template
        for name in set(PLACEHOLDER_PATTERN.findall(template)):
            value = self._placeholder_value(name, source)
            if value is not None:
                resolved = resolved.replace('{' + name + '}', value)

        if '{' in resolved or '}' in resolved:
            return None
        return resolved

    def _placeholder_value(self, name: str, source: str) -> Optional[str]:
        alias = PLACEHOLDER_ALIASES.get(name)
        if alias is not None:
            patterns = [rf'"{re.escape(alias)}":\s*"([^"]+)"']
        else:
            field_name = re.escape(name)
            patterns = [
                rf'"{field_name}":\s*"([^"]+)"',
                rf'"user_{field_name}":\s*"([^"]+)"',
                rf'"{field_name}":\s*(\d+)',
                rf'"user_{field_name}":\s*(\d+)',
            ]

        for pattern in patterns:
            match = re.search(pattern, source)
            if match:
                return match.group(1)
        return None

    def _literal_job(
        self,
        url: str,
        origin: str,
        base_url: str,
        kind: str
    ) -> Optional[Job]:
        resolved = resolve_url(base_url, url)
        if not is_fetchable(resolved):
            return None

        resolved = canonical_url(resolved)
        return Job(
            url=resolved,
            kind=kind,
            origin=origin,
            base_url=base_url,
            target=get_asset_path(resolved, kind)
        )
