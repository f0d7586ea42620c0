"""
Work units exchanged between the scanner, the download pool and the rewriter.
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Tuple


class AssetKind:
    """Kinds of downloadable assets."""

    STYLE = 'style'
    SCRIPT = 'script'
    IMAGE = 'image'
    FONT = 'font'
    MANIFEST = 'manifest'  # web app manifests and icon links
    JSON = 'json'

    ALL = (STYLE, SCRIPT, IMAGE, FONT, MANIFEST, JSON)


# Priority tiers, lower value is scheduled first
CRITICAL = 0
DEFERRED = 1

_CRITICAL_KINDS = frozenset({AssetKind.STYLE, AssetKind.SCRIPT, AssetKind.MANIFEST, AssetKind.JSON})


@dataclass(frozen=True)
class Job:
    """
    One unit of fetch-and-persist work.

    Identity is the canonical ``url``. ``origin`` is the reference exactly as
    it appeared in the source text; ``aliases`` are further origin strings
    that resolved to the same URL. ``target`` pins the storage path when a
    transformer has already written that path into some text.
    """

    url: str
    kind: str
    origin: str
    base_url: str
    retries: int = 0
    aliases: Tuple[str, ...] = ()
    target: Optional[str] = None

    @property
    def tier(self) -> int:
        return CRITICAL if self.kind in _CRITICAL_KINDS else DEFERRED

    @property
    def origins(self) -> Tuple[str, ...]:
        return (self.origin,) + tuple(a for a in self.aliases if a != self.origin)

    def with_alias(self, origin: str) -> "Job":
        if origin in self.origins:
            return self
        return replace(self, aliases=self.aliases + (origin,))

    def next_attempt(self) -> "Job":
        return replace(self, retries=self.retries + 1)


@dataclass
class JobResult:
    """Terminal outcome of a job."""

    job: Job
    success: bool
    local_path: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 1


@dataclass
class DownloadOutcome:
    """What a successful job handler hands back to the pool."""

    local_path: str
    discovered: list = field(default_factory=list)
