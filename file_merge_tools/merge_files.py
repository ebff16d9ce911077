#!/usr/bin/env python3
"""
File Merge - k-way merge of large sorted delimited files

Merges files that are each sorted on one key column into a single stream
on stdout, ordered by that key. Input files may be plain, gzip (.gz) or
bzip2 (.bz2) compressed. Only one record per file is held in memory.

Usage Examples:
    # Merge all matching files to stdout
    file-merge --delimiter tsv --key-index 0 --glob '/data/*.tsv.gz'

    # Only records with 12345 <= key <= 12347, numeric keys
    file-merge --delimiter tsv --key-index 0 --glob '/data/*.tsv.gz' \\
        --key-type Unsigned32Integer --key-start 12345 --key-end 12347

    # Build or refresh a manifest (no merge happens in this mode)
    file-merge --delimiter tsv --key-index 0 --glob '/data/*.tsv.gz' --manifest data.manifest

    # Merge the files recorded in a manifest
    file-merge --delimiter tsv --key-index 0 --manifest data.manifest --key-start 12345

    # Pipe to other processes
    file-merge --delimiter csv --key-index 2 --glob 'logs/*.csv' | gzip > merged.csv.gz

Requirements:
    - Every input file must be sorted on the key column, in the order of
      the chosen --key-type (this is not checked)
    - All files share the same delimiter and key column

Exit status:
    0 success, 1 nothing to merge or manifest error, 2 usage error,
    130 interrupted
"""

import logging
import os
import sys

from .manifest.manifest_store import load_manifest, write_manifest
from .merge.merge_scheduler import MergeStats, run, seek_all
from .merge.working_set import WorkingSet
from .settings import MergeSettings, configure_logging, load_settings

logger = logging.getLogger(__name__)


def build_working_set(settings: MergeSettings) -> WorkingSet:
    """Load the manifest (if it exists) and then every glob into one working set."""
    working_set = WorkingSet(settings.key_type)

    if settings.manifest_exists:
        logger.debug("Manifest %s exists, loading it first", settings.manifest_path)
        load_manifest(
            settings.manifest_path,
            settings.delimiter,
            settings.key_index,
            working_set=working_set,
        )
    elif settings.manifest_path is not None:
        logger.info("Manifest %s doesn't exist yet, it will be written", settings.manifest_path)

    for pattern in settings.glob_choices:
        working_set.load_from_glob(
            pattern, settings.delimiter, settings.key_index, settings.exclude_patterns
        )
    return working_set


def run_merge(settings: MergeSettings, output=None) -> int:
    """
    Execute one invocation described by settings.

    Returns:
        Process exit status
    """
    try:
        working_set = build_working_set(settings)
    except OSError as e:
        logger.error("Unable to load manifest %s: %s", settings.manifest_path, e)
        return 1

    if settings.refresh_manifest:
        try:
            write_manifest(settings.manifest_path, working_set)
        except OSError as e:
            logger.error("Unable to write manifest %s: %s", settings.manifest_path, e)
            return 1
        return 0

    if not working_set:
        logger.error("[ERROR] No files to merge")
        return 1

    stats = MergeStats()
    seek_all(working_set, settings.key_start, stats)
    if settings.key_end is not None:
        logger.info("[MERGE] Beginning merge -> %s", settings.key_end)
    else:
        logger.info("[MERGE] Beginning merge -> EOF")
    run(working_set, settings.key_end, emit=True, output=output, stats=stats)
    return 0


def main(argv=None):
    """Main entry point for command-line usage."""
    settings = load_settings(argv)
    configure_logging(settings.verbosity, settings.quiet)

    try:
        status = run_merge(settings)
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        sys.exit(130)
    except BrokenPipeError:
        # Downstream closed early (e.g. | head)
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        sys.exit(0)
    sys.exit(status)


if __name__ == "__main__":
    main()
