"""
Storage sink that persists downloaded assets under the output root.
"""

import os
import tempfile
from typing import Union

from ..utils.log import get_logger
from ..utils.paths import ensure_parent_dir


class StorageError(Exception):
    """A file could not be written. Not retried."""


class FileStorage:
    """
    Writes files below a root directory.

    Every write goes to a temporary file in the destination directory and is
    then moved into place, so two jobs that pick the same file name never
    leave a half-written file behind.
    """

    def __init__(self, root: str):
        self.root = os.path.abspath(root)
        self.logger = get_logger("storage")

    def put(self, relative_path: str, data: Union[bytes, str]) -> str:
        """
        Store data at a path relative to the root.

        Args:
            relative_path: Destination, forward slashes allowed
            data: File content; text is encoded as UTF-8

        Returns:
            Absolute path of the written file

        Raises:
            StorageError: If the path escapes the root or the write fails
        """
        if isinstance(data, str):
            data = data.encode('utf-8')

        local_path = os.path.abspath(os.path.join(self.root, *relative_path.split('/')))
        if os.path.commonpath([self.root, local_path]) != self.root or local_path == self.root:
            raise StorageError(f"Refusing to write outside {self.root}: {relative_path}")

        tmp_path = None
        try:
            ensure_parent_dir(local_path)
            fd, tmp_path = tempfile.mkstemp(
                dir=os.path.dirname(local_path),
                prefix='.',
                suffix='.part'
            )
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            os.replace(tmp_path, local_path)
            tmp_path = None
        except OSError as e:
            raise StorageError(f"Cannot write {relative_path}: {e}") from e
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)

        self.logger.debug(f"Stored {len(data)} bytes at {local_path}")
        return local_path
