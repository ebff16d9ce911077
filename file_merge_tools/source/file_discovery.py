"""
File discovery for merge inputs.

Turns a --glob argument into concrete file paths. A pattern may be a
directory (walked recursively), an exact file, or a glob expression
('**' allowed).
"""

import fnmatch
import glob
import logging
import os
from typing import List, Optional

logger = logging.getLogger(__name__)


def excluded_by(path: str, exclude_patterns: Optional[List[str]]) -> Optional[str]:
    """Return the first pattern matching the basename of path, or None."""
    basename = os.path.basename(path)
    return next(
        (pattern for pattern in exclude_patterns or () if fnmatch.fnmatch(basename, pattern)),
        None,
    )


def expand_glob(pattern: str, exclude_patterns: Optional[List[str]] = None) -> List[str]:
    """
    Resolve one pattern to a sorted list of absolute file paths.

    Args:
        pattern: Directory, file path or glob expression
        exclude_patterns: Optional basename patterns to drop from the result

    Returns:
        Sorted, de-duplicated absolute paths. Unmatched patterns give an
        empty list and a warning, never an exception.
    """
    candidates = set()

    if os.path.isdir(pattern):
        logger.debug("[DISCOVER] Scanning directory: %s", pattern)
        for root, _, filenames in os.walk(pattern):
            for filename in filenames:
                candidates.add(os.path.abspath(os.path.join(root, filename)))
    elif os.path.isfile(pattern):
        candidates.add(os.path.abspath(pattern))
    else:
        for match in glob.glob(pattern, recursive=True):
            if os.path.isfile(match):
                candidates.add(os.path.abspath(match))
            else:
                logger.debug("[DISCOVER] Ignoring non-file match %s", match)

    if not candidates:
        logger.warning("[DISCOVER] Pattern '%s' matched no files", pattern)
        return []

    files = []
    for path in sorted(candidates):
        matched = excluded_by(path, exclude_patterns)
        if matched is not None:
            logger.info("[EXCLUDE] %s (matches: %s)", os.path.basename(path), matched)
        else:
            logger.debug("[INCLUDE] %s", path)
            files.append(path)

    logger.info(
        "[DISCOVER] Pattern '%s': %d found, %d excluded, %d included",
        pattern,
        len(candidates),
        len(candidates) - len(files),
        len(files),
    )
    return files
