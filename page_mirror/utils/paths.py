"""
Path and URL utilities for the page mirror.

Provides URL resolution, local file naming, and directory management.
"""

import os
import posixpath
import re
import shutil
from functools import lru_cache
from typing import Optional
from urllib.parse import urlparse, urljoin, urldefrag, unquote

from .constants import ASSETS_DIR, IMAGES_DIR, FONTS_DIR


FONT_EXTENSIONS = ('.woff', '.woff2', '.ttf', '.eot', '.svg')

# Extensions for resources without one, keyed by declared content type
CONTENT_TYPE_EXTENSIONS = {
    'image/jpeg': '.jpg',
    'image/png': '.png',
    'image/gif': '.gif',
    'image/webp': '.webp',
    'image/svg+xml': '.svg',
    'image/avif': '.avif',
    'image/x-icon': '.ico',
    'image/vnd.microsoft.icon': '.ico',
    'application/manifest+json': '.json',
    'application/json': '.json',
}

# Characters that are not allowed in file names on common filesystems
_UNSAFE_CHARS = re.compile(r'[<>:"|?*\\]')


@lru_cache(maxsize=4096)
def resolve_url(base_url: str, ref: str) -> str:
    """
    Resolve a reference against an absolute base URL.

    Absolute references are returned as they are, protocol-relative ones
    (``//host/path``) take the scheme of the base and relative ones are
    joined onto the base. A reference that cannot be parsed is returned
    unchanged.

    Args:
        base_url: Absolute URL of the document or stylesheet
        ref: Reference as it appeared in the source

    Returns:
        Absolute URL string, or ``ref`` if it is malformed
    """
    ref = ref.strip()
    if not ref:
        return ref

    try:
        if ref.startswith('//'):
            scheme = urlparse(base_url).scheme or 'https'
            return f"{scheme}:{ref}"
        return urljoin(base_url, ref)
    except ValueError:
        return ref


def canonical_url(url: str) -> str:
    """Dedup key for a resolved URL: the URL without its fragment."""
    try:
        return urldefrag(url).url
    except ValueError:
        return url


def is_fetchable(url: str) -> bool:
    """
    Check whether a resolved URL can be downloaded.

    Args:
        url: Resolved URL

    Returns:
        True for absolute http(s) URLs with a host
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def is_absolute_http(ref: str) -> bool:
    """True if the reference is written as an absolute http(s) URL."""
    return ref.startswith(('http://', 'https://'))


def url_path_segment(url: str) -> str:
    """
    Get the last segment of a URL path.

    Args:
        url: URL to inspect

    Returns:
        Decoded file name, or an empty string for directory URLs
    """
    try:
        path = urlparse(url).path
    except ValueError:
        return ""
    return unquote(posixpath.basename(path))


def url_extension(url: str) -> str:
    """Lower-cased extension of the URL path, ignoring query and fragment."""
    return posixpath.splitext(url_path_segment(url))[1].lower()


def has_font_extension(url: str) -> bool:
    """Check if a URL points at a font file."""
    return url_extension(url) in FONT_EXTENSIONS


def safe_filename(name: str, default: str = "asset") -> str:
    """Strip characters that cannot appear in a local file name."""
    name = _UNSAFE_CHARS.sub('_', name).strip()
    if name in ('', '.', '..'):
        return default
    return name


def extension_for_content_type(content_type: Optional[str], default: str = '.jpg') -> str:
    """
    Map a declared content type to a file extension.

    Args:
        content_type: MIME type without parameters
        default: Extension used for unknown or missing types

    Returns:
        Extension including the leading dot
    """
    if not content_type:
        return default
    return CONTENT_TYPE_EXTENSIONS.get(content_type.split(';')[0].strip().lower(), default)


def get_asset_path(
    url: str,
    kind: str,
    content_type: Optional[str] = None
) -> str:
    """
    Generate the storage path of an asset, relative to the output root.

    Stylesheets, scripts and JSON files are named by their last path segment
    with the type extension enforced. Manifests and icons keep their
    extension. Images without an extension get one from the content type.
    Fonts always go under the fonts directory.

    Args:
        url: Final URL of the asset
        kind: Asset kind ('style', 'script', 'json', 'manifest', 'image', 'font')
        content_type: Declared content type of the response, if known

    Returns:
        Relative path using forward slashes
    """
    filename = safe_filename(url_path_segment(url))
    _, ext = posixpath.splitext(filename)

    if kind == 'style':
        if not filename.endswith('.css'):
            filename += '.css'
        return posixpath.join(ASSETS_DIR, filename)

    if kind == 'script':
        if not filename.endswith('.js'):
            filename += '.js'
        return posixpath.join(ASSETS_DIR, filename)

    if kind == 'json':
        if not filename.endswith('.json'):
            filename += '.json'
        return posixpath.join(ASSETS_DIR, filename)

    if kind == 'manifest':
        if not ext:
            filename += extension_for_content_type(content_type, default='.json')
        return posixpath.join(ASSETS_DIR, filename)

    if kind == 'font':
        return posixpath.join(FONTS_DIR, filename)

    # Images
    if not ext:
        filename += extension_for_content_type(content_type)
    return posixpath.join(IMAGES_DIR, filename)


def font_target(url: str) -> str:
    """Storage path of a font, relative to the output root."""
    return get_asset_path(url, 'font')


def ensure_dir(path: str) -> None:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists
    """
    os.makedirs(path, exist_ok=True)


def ensure_parent_dir(file_path: str) -> None:
    """
    Ensure the parent directory of a file exists.

    Args:
        file_path: File path whose parent directory should exist
    """
    parent = os.path.dirname(file_path)
    if parent:
        ensure_dir(parent)


def create_output_structure(output_dir: str) -> dict:
    """
    Create the output directory structure for a mirrored page.

    Args:
        output_dir: Base output directory

    Returns:
        Dictionary of created directory paths
    """
    dirs = {
        'root': output_dir,
        'assets': os.path.join(output_dir, ASSETS_DIR),
        'images': os.path.join(output_dir, IMAGES_DIR),
        'fonts': os.path.join(output_dir, FONTS_DIR),
    }

    for dir_path in dirs.values():
        ensure_dir(dir_path)

    return dirs


def clean_output_dir(output_dir: str) -> None:
    """Remove a previous mirror, if any."""
    if os.path.isdir(output_dir):
        shutil.rmtree(output_dir)


def to_root_relative(local_path: str, root: str) -> str:
    """
    Express a stored file path relative to the output root.

    Args:
        local_path: Path returned by the storage sink
        root: Output root directory

    Returns:
        Relative path with forward slashes
    """
    rel_path = os.path.relpath(os.path.abspath(local_path), os.path.abspath(root))
    return rel_path.replace('\\', '/')
