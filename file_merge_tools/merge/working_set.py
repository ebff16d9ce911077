"""
The set of source streams eligible for a merge.

A WorkingSet maps each file path to at most one SourceStream. Files enter
through admit(), directly or via glob patterns and manifests. Admitting a
path that is already present replaces the old stream, unless the file's
on-disk size is unchanged, in which case the existing stream is kept and
the file is not scanned again.

Files that cannot be opened are logged and skipped; one bad file never
fails a whole admission pass.
"""

import logging
import os
from typing import Dict, Iterator, List, Optional

from ..keys import KeyType
from ..source.file_discovery import expand_glob
from ..source.source_stream import OpenError, SourceStream

logger = logging.getLogger(__name__)


class WorkingSet:
    """Mapping of path -> SourceStream, unique by path."""

    def __init__(self, key_type: KeyType = KeyType.STRING):
        self.key_type = key_type
        self._streams: Dict[str, SourceStream] = {}

    def is_current(self, path: str, filesize: Optional[int] = None) -> bool:
        """
        True if a stream for path is present and its recorded size still matches.

        Args:
            path: File path
            filesize: Size to compare against; the on-disk size when omitted
        """
        existing = self._streams.get(path)
        if existing is None:
            return False
        if filesize is None:
            try:
                filesize = os.path.getsize(path)
            except OSError:
                return False
        return existing.filesize == filesize

    def add(self, stream: SourceStream) -> None:
        """Insert a stream, closing and replacing any stream for the same path."""
        previous = self._streams.get(stream.path)
        if previous is not None and previous is not stream:
            logger.debug("Replacing stream for %s", stream.path)
            previous.close()
        self._streams[stream.path] = stream

    def admit(self, path: str, delimiter: str, key_index: int) -> Optional[SourceStream]:
        """
        Open a file and insert it, unless an unchanged copy is already present.

        Returns:
            The stream now held for path, or None if the file could not be
            opened (any stream previously held for path is dropped then)
        """
        if self.is_current(path):
            logger.debug("Skipping %s, already current", path)
            return self._streams[path]

        try:
            stream = SourceStream.open(path, delimiter, key_index, self.key_type)
        except OpenError as e:
            logger.warning("Skipping %s", e)
            # Whatever was held for this path no longer matches the file
            if self.remove(path) is not None:
                logger.warning("Dropped stale stream for %s", path)
            return None

        self.add(stream)
        return stream

    def load_from_glob(
        self,
        pattern: str,
        delimiter: str,
        key_index: int,
        exclude_patterns: Optional[List[str]] = None,
    ) -> "WorkingSet":
        """Admit every file matched by pattern. Returns self for chaining."""
        paths = expand_glob(pattern, exclude_patterns)
        admitted = 0
        for path in paths:
            if self.admit(path, delimiter, key_index) is not None:
                admitted += 1

        logger.info(
            "Loaded %d of %d files from glob '%s' (%d in working set)",
            admitted,
            len(paths),
            pattern,
            len(self),
        )
        return self

    @classmethod
    def from_glob(
        cls,
        pattern: str,
        delimiter: str,
        key_index: int,
        key_type: KeyType = KeyType.STRING,
        exclude_patterns: Optional[List[str]] = None,
    ) -> "WorkingSet":
        """Build a new working set from one glob pattern."""
        return cls(key_type).load_from_glob(pattern, delimiter, key_index, exclude_patterns)

    def get(self, path: str) -> Optional[SourceStream]:
        return self._streams.get(path)

    def remove(self, path: str) -> Optional[SourceStream]:
        """Drop a stream from the set and release its handle."""
        stream = self._streams.pop(path, None)
        if stream is not None:
            stream.close()
        return stream

    def streams(self) -> List[SourceStream]:
        return list(self._streams.values())

    def paths(self) -> List[str]:
        return sorted(self._streams)

    def take(self) -> List[SourceStream]:
        """Empty the set and hand its streams (still open) to the caller."""
        streams = list(self._streams.values())
        self._streams.clear()
        return streams

    def close(self) -> None:
        for stream in self._streams.values():
            stream.close()
        self._streams.clear()

    def __len__(self):
        return len(self._streams)

    def __iter__(self) -> Iterator[SourceStream]:
        return iter(list(self._streams.values()))

    def __contains__(self, path):
        return path in self._streams

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self):
        return f"WorkingSet({len(self)} streams, key_type={self.key_type.value})"
