"""
Manifest - persisted key ranges of merge input files

A manifest lets repeated merges over a slowly growing set of files skip
work. Each line records one file, comma-separated, no header:

    <filename>,<beginning_key>,<ending_key>,<delimiter_label>,<key_index>,<filesize>

Example:
    /data/data1.tsv.gz,12345,12399,tsv,0,48213
    /data/data2.tsv.gz,12350,12420,tsv,0,51877

The recorded size is the file's on-disk (compressed) size. On load, an
entry whose size no longer matches the file is stale and skipped; the
file has to be admitted again through a glob. Entries that still match
are reopened from disk, so a live stream's beginning key always comes
from the file itself, never from the manifest text.

Writing a manifest drains every stream to learn its true ending key, then
writes the entries ordered by that key. Files whose name or keys contain a
comma cannot be represented and are left out with a warning.
"""

import logging
import os
from dataclasses import dataclass
from typing import Iterator, Optional

from ..errors import FileMergeError
from ..keys import KeyType
from ..merge.working_set import WorkingSet
from ..settings import delimiter_label, parse_delimiter
from ..source.source_stream import SourceStream

logger = logging.getLogger(__name__)

MANIFEST_FIELDS = 6
MANIFEST_SEPARATOR = ","


class ManifestParseError(FileMergeError):
    """A manifest line does not have the expected shape."""

    def __init__(self, line_num: int, line: str, reason: str):
        super().__init__(f"manifest line {line_num}: {reason}: {line[:80]!r}")
        self.line_num = line_num
        self.line = line


class ManifestStaleError(FileMergeError):
    """The file's size changed since the manifest entry was written."""

    def __init__(self, filename: str, recorded_size: int, ondisk_size: int):
        super().__init__(
            f"{filename}: size changed ({ondisk_size} on disk != {recorded_size} in manifest)"
        )
        self.filename = filename
        self.recorded_size = recorded_size
        self.ondisk_size = ondisk_size


@dataclass(frozen=True)
class ManifestEntry:
    filename: str
    beginning_key: str
    ending_key: str
    delimiter_label: str
    key_index: int
    filesize: int

    @property
    def delimiter(self) -> str:
        return parse_delimiter(self.delimiter_label)

    def is_writable(self) -> bool:
        """False if a text field holds the separator and would not parse back."""
        return not any(
            MANIFEST_SEPARATOR in text
            for text in (self.filename, self.beginning_key, self.ending_key)
        )

    def to_line(self) -> str:
        return MANIFEST_SEPARATOR.join(
            [
                self.filename,
                self.beginning_key,
                self.ending_key,
                self.delimiter_label,
                str(self.key_index),
                str(self.filesize),
            ]
        )

    @classmethod
    def from_stream(cls, stream: SourceStream) -> "ManifestEntry":
        """Build an entry from a stream that has reached end-of-file."""
        if stream.ending_key is None:
            raise ValueError(f"{stream.path} has no ending key")
        return cls(
            filename=stream.path,
            beginning_key=str(stream.beginning_key),
            ending_key=str(stream.ending_key),
            delimiter_label=delimiter_label(stream.delimiter),
            key_index=stream.key_index,
            filesize=stream.filesize,
        )


def parse_manifest_line(line: str, line_num: int = 0) -> ManifestEntry:
    """
    Parse one manifest line.

    Raises:
        ManifestParseError: On a wrong field count or non-numeric index/size
    """
    line = line.rstrip("\r\n")
    parts = line.split(MANIFEST_SEPARATOR)
    if len(parts) != MANIFEST_FIELDS:
        raise ManifestParseError(
            line_num, line, f"expected {MANIFEST_FIELDS} fields, got {len(parts)}"
        )

    filename, beginning_key, ending_key, label, key_index, filesize = parts
    if not key_index.isdigit() or not filesize.isdigit():
        raise ManifestParseError(line_num, line, "key index and file size must be integers")
    try:
        parse_delimiter(label)
    except ValueError as e:
        raise ManifestParseError(line_num, line, str(e)) from e

    return ManifestEntry(
        filename=filename,
        beginning_key=beginning_key,
        ending_key=ending_key,
        delimiter_label=label,
        key_index=int(key_index),
        filesize=int(filesize),
    )


def read_manifest_entries(manifest_path: str) -> Iterator[ManifestEntry]:
    """
    Yield the valid entries of a manifest, skipping bad lines with a warning.

    Raises:
        OSError: If the manifest cannot be read
    """
    with open(manifest_path, "r", encoding="utf-8") as fh:
        for line_num, line in enumerate(fh, 1):
            if not line.strip():
                continue
            try:
                yield parse_manifest_line(line, line_num)
            except ManifestParseError as e:
                logger.warning("[MANIFEST] Skipping %s", e)


def load_manifest(
    manifest_path: str,
    delimiter: str,
    key_index: int,
    key_type: KeyType = KeyType.STRING,
    working_set: Optional[WorkingSet] = None,
) -> WorkingSet:
    """
    Admit every still-valid file listed in a manifest.

    Args:
        manifest_path: Manifest to read
        delimiter: Delimiter the files are opened with
        key_index: Key column the files are opened with
        key_type: Key type for a new working set
        working_set: Existing set to add to (a new one is created if omitted)

    Returns:
        The working set holding the admitted streams

    Raises:
        OSError: If the manifest itself cannot be read
    """
    if working_set is None:
        working_set = WorkingSet(key_type)

    admitted = skipped = 0
    for entry in read_manifest_entries(manifest_path):
        if working_set.is_current(entry.filename, entry.filesize):
            logger.debug("[MANIFEST] %s already loaded and unchanged", entry.filename)
            continue

        try:
            ondisk_size = os.path.getsize(entry.filename)
        except OSError as e:
            logger.warning("[MANIFEST] Skipping %s, cannot stat file: %s", entry.filename, e)
            skipped += 1
            continue

        if ondisk_size != entry.filesize:
            logger.warning(
                "[MANIFEST] Skipping stale entry %s",
                ManifestStaleError(entry.filename, entry.filesize, ondisk_size),
            )
            skipped += 1
            continue

        if entry.delimiter != delimiter or entry.key_index != key_index:
            logger.warning(
                "[MANIFEST] %s was recorded with delimiter %s and key index %d, "
                "opening with %s and %d",
                entry.filename,
                entry.delimiter_label,
                entry.key_index,
                delimiter_label(delimiter),
                key_index,
            )

        if working_set.admit(entry.filename, delimiter, key_index) is None:
            skipped += 1
        else:
            admitted += 1

    logger.info(
        "[MANIFEST] Loaded %d files from %s (%d skipped)", admitted, manifest_path, skipped
    )
    return working_set


def write_manifest(manifest_path: str, working_set: WorkingSet) -> int:
    """
    Scan every stream to its end and write a manifest for them.

    The working set is consumed and its streams are closed.

    Returns:
        Number of entries written

    Raises:
        OSError: If the manifest cannot be written
    """
    streams = working_set.take()
    try:
        for stream in streams:
            stream.fast_forward_to_end()

        entries = []
        for stream in sorted(streams, key=lambda s: (s.current_key, s.path)):
            if stream.ending_key is None:
                logger.warning(
                    "[MANIFEST] Leaving %s out, no ending key (%s)", stream.path, stream.error
                )
                continue
            entry = ManifestEntry.from_stream(stream)
            if not entry.is_writable():
                logger.warning(
                    "[MANIFEST] Leaving %s out, filename or key range %s..%s contains ','",
                    stream.path,
                    entry.beginning_key,
                    entry.ending_key,
                )
                continue
            entries.append(entry)
    finally:
        for stream in streams:
            stream.close()

    with open(manifest_path, "w", encoding="utf-8") as fh:
        for entry in entries:
            fh.write(entry.to_line() + "\n")

    logger.info("[MANIFEST] Wrote %d entries to %s", len(entries), manifest_path)
    return len(entries)
