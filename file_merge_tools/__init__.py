"""
File Merge Tools

A Python package for merging many large, individually sorted, delimited
text files (plain, gzip or bzip2) into one stream ordered by a key column.
Keeps a manifest of each file's key range and size so repeated merges over
a growing set of files can skip unchanged files.

Modules:
    keys: Typed merge keys (unsigned, signed, string)
    source: Per-file streaming readers and file discovery
    merge: Working sets and the k-way merge scheduler
    manifest: Manifest load/write and Redis publishing
    settings: Command-line configuration and logging setup
"""

__version__ = "1.0.0"

from .keys import KeyParseError, KeyType, KeyValue
from .manifest.manifest_store import load_manifest, write_manifest
from .merge.merge_scheduler import merge, run, seek_all
from .merge.working_set import WorkingSet
from .source.source_stream import SourceStream

__all__ = [
    "KeyType",
    "KeyValue",
    "KeyParseError",
    "SourceStream",
    "WorkingSet",
    "seek_all",
    "run",
    "merge",
    "load_manifest",
    "write_manifest",
    "__version__",
]
