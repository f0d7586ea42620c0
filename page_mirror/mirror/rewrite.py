"""
Reference rewriter for pointing a document at its local assets.

Replaces every origin reference in the document text with the path of the
downloaded file, relative to the output root.
"""

import html
import re
from typing import Dict

from ..utils.log import get_logger
from ..utils.paths import to_root_relative


ERROR_SUPPRESSION_MARKER = "Suppress errors from resources unavailable offline"

ERROR_SUPPRESSION_SCRIPT = """<script>
// Suppress errors from resources unavailable offline
(function () {
    var patterns = [
        'localhost:127',
        'Failed to fetch',
        'NetworkError',
        'ERR_CONNECTION_REFUSED',
        'SecurityError',
        'Script origin does not match',
        "registering client's origin"
    ];
    function isOfflineError(message) {
        message = String(message || '');
        for (var i = 0; i < patterns.length; i++) {
            if (message.indexOf(patterns[i]) !== -1) {
                return true;
            }
        }
        return false;
    }
    window.addEventListener('error', function (e) {
        if (isOfflineError(e.message)) {
            e.preventDefault();
            e.stopPropagation();
            return false;
        }
    }, true);
    window.addEventListener('unhandledrejection', function (e) {
        if (e.reason && isOfflineError(e.reason)) {
            e.preventDefault();
            return false;
        }
    });
    if (!window.__offlineConsoleFilter) {
        window.__offlineConsoleFilter = true;
        var originalError = console.error;
        console.error = function () {
            var message = Array.prototype.join.call(arguments, ' ');
            if (isOfflineError(message)) {
                return;
            }
            originalError.apply(console, arguments);
        };
    }
})();
</script>"""

HEAD_PATTERN = re.compile(r'(<head(?:\s[^>]*)?>)', re.IGNORECASE)


class ReferenceRewriter:
    """
    Rewrites asset references in document text to local relative paths.

    Replacement is textual and global: an origin string is replaced wherever
    it occurs, not only in the tag it was found in.
    """

    def __init__(self, output_dir: str):
        """
        Initialize the rewriter.

        Args:
            output_dir: Output root the document is saved in
        """
        self.output_dir = output_dir
        self.logger = get_logger("rewriter")

    def rewrite(self, document: str, asset_map: Dict[str, str]) -> str:
        """
        Replace every mapped origin reference in the document.

        All replacements happen in a single pass, longest origin first, so
        replaced text is never matched again and every occurrence of an
        origin gets the same path.

        Args:
            document: Original document text
            asset_map: Origin reference -> stored file path

        Returns:
            Rewritten document text
        """
        replacements: Dict[str, str] = {}
        for origin, local_path in asset_map.items():
            if not origin or not local_path:
                continue
            relative = to_root_relative(local_path, self.output_dir)
            replacements.setdefault(origin, relative)

            # The scanner sees attribute values with entities decoded
            escaped = html.escape(origin, quote=False)
            if escaped != origin:
                replacements.setdefault(escaped, html.escape(relative, quote=False))

        if not replacements:
            return document

        pattern = re.compile('|'.join(
            re.escape(origin) for origin in sorted(replacements, key=len, reverse=True)
        ))
        rewritten, count = pattern.subn(lambda m: replacements[m.group(0)], document)

        self.logger.debug(f"Rewrote {count} references using {len(asset_map)} assets")
        return rewritten


def add_error_suppression_script(document: str) -> str:
    """
    Insert a script right after <head> that silences network errors.

    Pages mirrored for offline use still try to reach their origin servers;
    the script keeps those failures out of the console. Calling this twice
    does not insert the script twice.

    Args:
        document: HTML document text

    Returns:
        Document with the script inserted
    """
    if ERROR_SUPPRESSION_MARKER in document:
        return document
    return HEAD_PATTERN.sub(
        lambda m: m.group(1) + "\n" + ERROR_SUPPRESSION_SCRIPT,
        document,
        count=1
    )
