"""
Manifest module - Persisted key ranges of merge input files.

Provides loading and writing of manifests, and publishing them to Redis.
"""

from .manifest_store import (
    ManifestEntry,
    ManifestParseError,
    ManifestStaleError,
    load_manifest,
    parse_manifest_line,
    read_manifest_entries,
    write_manifest,
)
from .manifest_to_redis import submit_manifest_to_redis

__all__ = [
    "ManifestEntry",
    "ManifestParseError",
    "ManifestStaleError",
    "load_manifest",
    "parse_manifest_line",
    "read_manifest_entries",
    "write_manifest",
    "submit_manifest_to_redis",
]
