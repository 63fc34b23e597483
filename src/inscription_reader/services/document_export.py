"""Delivery of finished transliteration documents to the user."""

import logging
from pathlib import Path
from typing import Tuple, Union

from inscription_reader.core.errors import DataError, ErrorCodes

logger = logging.getLogger(__name__)


def decode_lines(document: bytes) -> Tuple[str, ...]:
    """
    Split a UTF-8 document into transliteration lines.

    A single trailing newline does not produce an empty last line.

    Raises:
        DataError: If the document is not UTF-8 text
    """
    try:
        text = document.decode('utf-8-sig')
    except UnicodeDecodeError as e:
        raise DataError(
            "Translation document is not UTF-8 text",
            error_code=ErrorCodes.INVALID_PAYLOAD,
            cause=e,
        )
    if not text:
        return ()
    return tuple(text.splitlines())


class DocumentExporter:
    """Writes documents into the download directory without overwriting."""

    def __init__(self, download_dir: Union[str, Path]):
        self.download_dir = Path(download_dir).expanduser()

    def deliver(self, document: bytes, filename: str) -> Path:
        """
        Save ``document`` as ``filename`` in the download directory.

        An existing file is never replaced; ``name (1).txt``, ``name (2).txt``
        and so on are tried instead.

        Returns:
            Path of the written file

        Raises:
            DataError: If the file cannot be written
        """
        try:
            self.download_dir.mkdir(parents=True, exist_ok=True)
            target = self._free_path(filename)
            with open(target, 'xb') as f:
                f.write(document)
        except OSError as e:
            raise DataError(
                f"Could not save {filename} to {self.download_dir}",
                file_path=str(self.download_dir / filename),
                error_code=ErrorCodes.FILE_WRITE_ERROR,
                cause=e,
            )
        logger.info(f"Saved document to {target} ({len(document)} bytes)")
        return target

    def _free_path(self, filename: str) -> Path:
        candidate = self.download_dir / filename
        stem, suffix = Path(filename).stem, Path(filename).suffix
        n = 1
        while candidate.exists():
            candidate = self.download_dir / f"{stem} ({n}){suffix}"
            n += 1
        return candidate
