"""
Streaming reader over one sorted, delimited input file.

A SourceStream reads its file one record at a time through the
decompressor chosen by the file extension, extracts the merge key from the
configured column and remembers:

    current_key / current_line   the record most recently read
    beginning_key                key of the first record (set once, on open)
    ending_key                   key of the last record, None until EOF

Streams are primed on open: a file whose first record cannot be read is
rejected with EmptyOrUnreadableError and never enters a working set.

A read or parse failure part-way through a file stops the stream, exactly
like end-of-file, but leaves ending_key unset and keeps the exception in
``stream.error`` so callers can tell the two apart. A stream retired by
the merge because it passed the end key also keeps ending_key None: the
file was not read to its end, so its last key is unknown.

Example:
    >>> stream = SourceStream.open("data1.tsv.gz", "\\t", 0, KeyType.UNSIGNED_32)
    >>> stream.beginning_key
    KeyValue(Unsigned32Integer, 12345)
    >>> stream.fast_forward(KeyType.UNSIGNED_32.parse("12347"))
    >>> stream.current_line
    b'12347\\tsome\\tpayload'
"""

import logging
import os
import zlib
from typing import BinaryIO, Optional

from ..errors import FileMergeError
from ..keys import KeyParseError, KeyType, KeyValue
from .decompression import file_extension, open_compressed

logger = logging.getLogger(__name__)


class OpenError(FileMergeError):
    """A file could not be admitted as a SourceStream."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


class NoExtensionError(OpenError):
    """The file has no extension to pick a decompressor from."""

    def __init__(self, path: str):
        super().__init__(path, "file has no extension")


class IoFailureError(OpenError):
    """The underlying file could not be opened or sized."""

    def __init__(self, path: str, cause: Exception):
        super().__init__(path, f"cannot open file ({cause})")
        self.cause = cause


class EmptyOrUnreadableError(OpenError):
    """The priming read returned no record."""

    def __init__(self, path: str, cause: Optional[Exception] = None):
        reason = f"first record unreadable ({cause})" if cause else "file is empty"
        super().__init__(path, reason)
        self.cause = cause


class MalformedRecordError(FileMergeError, ValueError):
    """A record has no key column or the column is not valid UTF-8."""


class SeekExhaustedError(FileMergeError):
    """End of file was reached before the fast-forward target key."""

    def __init__(self, path: str, target: KeyValue):
        super().__init__(f"{path}: exhausted before reaching key {target}")
        self.path = path
        self.target = target


# Errors raised by gzip/bz2/plain readers on corrupt or truncated input
_READ_ERRORS = (OSError, EOFError, zlib.error)


class SourceStream:
    """
    One input file mid-scan. Order is by current_key, identity by (path, filesize).

    ending_key is None until a read actually hits end-of-file; it is never
    filled in from the last key seen before a failure or an end bound.
    """

    def __init__(
        self,
        path: str,
        handle: BinaryIO,
        filesize: int,
        delimiter: str,
        key_index: int,
        key_type: KeyType = KeyType.STRING,
    ):
        self.path = path
        self.filesize = filesize
        self.delimiter = delimiter
        self.key_index = key_index
        self.key_type = key_type

        self.current_key: Optional[KeyValue] = None
        self.current_line: Optional[bytes] = None
        self.beginning_key: Optional[KeyValue] = None
        self.ending_key: Optional[KeyValue] = None

        self.records_read = 0
        self.exhausted = False
        self.error: Optional[Exception] = None

        self._handle: Optional[BinaryIO] = handle
        self._delimiter_bytes = delimiter.encode("utf-8")

    @classmethod
    def open(
        cls,
        path: str,
        delimiter: str,
        key_index: int,
        key_type: KeyType = KeyType.STRING,
    ) -> "SourceStream":
        """
        Open a file and prime it with its first record.

        Args:
            path: Path to the input file
            delimiter: Single field delimiter character
            key_index: Zero-based index of the key column
            key_type: Type the key column is parsed as

        Returns:
            A primed SourceStream

        Raises:
            NoExtensionError: If the path has no extension
            IoFailureError: If the file cannot be opened
            EmptyOrUnreadableError: If no first record could be read
        """
        extension = file_extension(path)
        if extension is None:
            raise NoExtensionError(path)

        try:
            filesize = os.path.getsize(path)
            handle = open_compressed(path, extension)
        except OSError as e:
            raise IoFailureError(path, e) from e

        stream = cls(path, handle, filesize, delimiter, key_index, key_type)
        if stream.next() is None:
            stream.close()
            raise EmptyOrUnreadableError(path, stream.error)

        stream.beginning_key = stream.current_key
        logger.debug("Opened %s (%d bytes), beginning key %s", path, filesize, stream.beginning_key)
        return stream

    def _extract_key(self, line: bytes) -> KeyValue:
        # Split no further than the key column
        fields = line.split(self._delimiter_bytes, self.key_index + 1)
        if len(fields) <= self.key_index:
            raise MalformedRecordError(
                f"record has {len(fields)} field(s), key column {self.key_index} missing"
            )
        try:
            text = fields[self.key_index].decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedRecordError(f"key column is not valid UTF-8 ({e})") from e
        return self.key_type.parse(text)

    def _stop(self, error: Optional[Exception] = None) -> None:
        self.exhausted = True
        if error is None:
            self.ending_key = self.current_key
            logger.debug("Reached EOF for %s after %d records", self.path, self.records_read)
        else:
            self.error = error
            logger.warning(
                "Stopping %s after %d records: %s", self.path, self.records_read, error
            )
        self.close()

    def next(self) -> Optional[KeyValue]:
        """
        Read the next record.

        Returns:
            The new current key, or None once the stream has stopped
            (end-of-file, read failure or unparseable key)
        """
        if self.exhausted:
            return None

        try:
            raw = self._handle.readline()
        except _READ_ERRORS as e:
            self._stop(e)
            return None

        if not raw:
            self._stop()
            return None

        if raw.endswith(b"\n"):
            raw = raw[:-1]
            if raw.endswith(b"\r"):
                raw = raw[:-1]

        try:
            key = self._extract_key(raw)
        except (KeyParseError, MalformedRecordError) as e:
            self._stop(e)
            return None

        self.records_read += 1
        self.current_line = raw
        self.current_key = key
        return key

    def fast_forward(self, target_key: KeyValue) -> None:
        """
        Skip records until current_key >= target_key.

        Raises:
            SeekExhaustedError: If the stream stops before reaching the target
        """
        while self.current_key < target_key:
            if self.next() is None:
                raise SeekExhaustedError(self.path, target_key)

    def fast_forward_to_end(self) -> Optional[KeyValue]:
        """Drain the stream so ending_key is final. Returns ending_key."""
        while self.next() is not None:
            pass
        return self.ending_key

    def close(self) -> None:
        """Release the file handle. Safe to call more than once."""
        if self._handle is not None:
            try:
                self._handle.close()
            finally:
                self._handle = None

    @property
    def closed(self) -> bool:
        return self._handle is None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __lt__(self, other):
        if not isinstance(other, SourceStream):
            return NotImplemented
        return self.current_key < other.current_key

    def __eq__(self, other):
        if not isinstance(other, SourceStream):
            return NotImplemented
        return self.path == other.path and self.filesize == other.filesize

    def __hash__(self):
        return hash((self.path, self.filesize))

    def __repr__(self):
        return f"SourceStream({self.path!r}, current_key={self.current_key})"
