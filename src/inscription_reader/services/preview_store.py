"""
Local storage for preview images.

Every preview the controller shows (the selected photograph, the
preprocessed output) is materialized as a file in a private temporary
directory. Handles are released on the state transition that retires
them, so a long session over many images does not accumulate files.
"""

import itertools
import logging
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional, Union

from inscription_reader.core.errors import DataError, ErrorCodes
from inscription_reader.models.session import PreviewHandle


class PreviewStore:
    """
    Scoped preview resources.

    Attributes:
        root: Directory holding live previews
        logger: Logger instance

    Example:
        >>> with PreviewStore() as store:
        ...     handle = store.acquire(png_bytes, suffix='.png', label='preprocessed')
        ...     store.release(handle)
    """

    def __init__(self, root: Optional[Union[str, Path]] = None):
        """
        Args:
            root: Directory for previews; a private temp directory when None
        """
        self.logger = logging.getLogger(__name__)
        self._owns_root = root is None
        self.root = Path(tempfile.mkdtemp(prefix='inscription_previews_')) if root is None else Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._handles: Dict[Path, PreviewHandle] = {}
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def __enter__(self) -> 'PreviewStore':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._handles)

    def acquire(self, data: bytes, suffix: str = '.png', label: str = '') -> PreviewHandle:
        """
        Materialize ``data`` as a preview file.

        Raises:
            DataError: If the file cannot be written
        """
        with self._lock:
            path = self.root / f"preview_{next(self._counter):05d}{suffix}"
        try:
            path.write_bytes(data)
        except OSError as e:
            raise DataError(
                f"Could not write preview {path.name}",
                file_path=str(path),
                error_code=ErrorCodes.FILE_WRITE_ERROR,
                cause=e,
            )
        handle = PreviewHandle(path=path, label=label, size_bytes=len(data))
        with self._lock:
            self._handles[path] = handle
        self.logger.debug(f"Acquired preview {path.name} ({label}, {len(data)} bytes)")
        return handle

    def acquire_file(self, source: Union[str, Path], label: str = '') -> PreviewHandle:
        """Copy an existing file into the store as a preview."""
        source = Path(source)
        try:
            data = source.read_bytes()
        except OSError as e:
            raise DataError(
                f"Could not read {source.name}",
                file_path=str(source),
                error_code=ErrorCodes.FILE_READ_ERROR,
                cause=e,
            )
        return self.acquire(data, suffix=source.suffix or '.img', label=label)

    def release(self, handle: Optional[PreviewHandle]) -> None:
        """Delete a preview. Releasing None or an already released handle is a no-op."""
        if handle is None:
            return
        with self._lock:
            known = self._handles.pop(handle.path, None)
        if known is None:
            return
        try:
            handle.path.unlink()
        except FileNotFoundError:
            pass
        self.logger.debug(f"Released preview {handle.path.name}")

    def release_all(self) -> None:
        """Delete every live preview."""
        with self._lock:
            handles = list(self._handles.values())
        for handle in handles:
            self.release(handle)

    def close(self) -> None:
        """Release all previews and remove the directory if the store created it."""
        self.release_all()
        if self._owns_root:
            shutil.rmtree(self.root, ignore_errors=True)
