"""
Decompression lookup for input files.

Files are opened through an opener chosen by their extension:

    .gz     gzip.open
    .bz2    bz2.open
    other   plain open (assumed uncompressed)

New formats are added with register_decompressor() and need no change to
the stream reader, e.g.:

    import lzma
    register_decompressor("xz", lzma.open)
"""

import bz2
import gzip
import logging
import os
from typing import BinaryIO, Callable, Dict, Optional

logger = logging.getLogger(__name__)

Opener = Callable[[str, str], BinaryIO]

_DECOMPRESSORS: Dict[str, Opener] = {
    "gz": gzip.open,
    "bz2": bz2.open,
}


def register_decompressor(extension: str, opener: Opener) -> None:
    """
    Register an opener for files ending in the given extension.

    Args:
        extension: Extension without the leading dot (e.g. 'xz')
        opener: Callable taking (path, mode) and returning a binary file object
    """
    _DECOMPRESSORS[extension.lstrip(".").lower()] = opener


def file_extension(path: str) -> Optional[str]:
    """
    Return the last extension of a path without the dot, or None.

    Dotfiles such as '.hidden' have no extension.
    """
    ext = os.path.splitext(os.path.basename(path))[1]
    if not ext:
        return None
    return ext[1:]


def get_opener(extension: str) -> Opener:
    """Return the opener for an extension, falling back to plain open()."""
    opener = _DECOMPRESSORS.get(extension.lower())
    if opener is None:
        logger.debug("Assuming .%s files are uncompressed", extension)
        return open
    logger.debug("Using %s for .%s files", getattr(opener, "__module__", opener), extension)
    return opener


def open_compressed(path: str, extension: str) -> BinaryIO:
    """Open a file for binary reading through its extension's decompressor."""
    return get_opener(extension)(path, "rb")
