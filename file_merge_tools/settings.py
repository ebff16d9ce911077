"""
Run configuration for the file-merge command.

Holds the argument parser, the MergeSettings it produces, delimiter label
handling shared with the manifest, and logging setup.
"""

import argparse
import logging
import os
import sys
from dataclasses import dataclass, field
from typing import List, Optional

from .keys import KeyParseError, KeyType, KeyValue

DELIMITER_LABELS = {
    "tsv": "\t",
    "csv": ",",
    "psv": "|",
}

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def parse_delimiter(text: str) -> str:
    """
    Turn a delimiter label or literal character into the delimiter character.

    Args:
        text: 'tsv', 'csv', 'psv' or exactly one character

    Raises:
        ValueError: For anything else
    """
    if text in DELIMITER_LABELS:
        return DELIMITER_LABELS[text]
    if len(text) == 1:
        return text
    raise ValueError(
        f"Unknown delimiter {text!r}, valid choices: tsv, csv, psv or a single character"
    )


def delimiter_label(delimiter: str) -> str:
    """Canonical label for a delimiter: 'tsv'/'csv'/'psv' or the character itself."""
    for label, char in DELIMITER_LABELS.items():
        if char == delimiter:
            return label
    return delimiter


def configure_logging(verbosity: int = 0, quiet: bool = False, stream=None) -> int:
    """
    Configure the root logger for command-line use.

    Args:
        verbosity: Number of -v flags (0 = warnings, 1 = info, 2+ = debug)
        quiet: Only report errors (overrides verbosity)
        stream: Where log records go (default: stderr)

    Returns:
        The applied log level
    """
    if quiet:
        level = logging.ERROR
    elif verbosity <= 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        stream=stream if stream is not None else sys.stderr,
        force=True,
    )
    logging.getLogger(__name__).debug("Applied log level: %s", logging.getLevelName(level))
    return level


@dataclass(frozen=True)
class MergeSettings:
    delimiter: str
    key_index: int
    key_type: KeyType = KeyType.STRING
    key_start: Optional[KeyValue] = None
    key_end: Optional[KeyValue] = None
    manifest_path: Optional[str] = None
    glob_choices: List[str] = field(default_factory=list)
    exclude_patterns: List[str] = field(default_factory=list)
    verbosity: int = 0
    quiet: bool = False

    @property
    def manifest_exists(self) -> bool:
        return self.manifest_path is not None and os.path.isfile(self.manifest_path)

    @property
    def refresh_manifest(self) -> bool:
        """glob(s) + manifest means rebuild the manifest instead of merging."""
        return bool(self.glob_choices) and self.manifest_path is not None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="file-merge",
        description=(
            "Merge many individually sorted delimited files into one stream "
            "ordered by a key column."
        ),
        epilog="Modes:\n"
        "  --glob only                 merge the matched files to stdout\n"
        "  --manifest only             merge the files listed in the manifest to stdout\n"
        "  --glob and --manifest       rebuild the manifest, do not merge\n\n"
        "Examples:\n"
        "  file-merge --delimiter tsv --key-index 0 --glob 'data/*.tsv.gz'\n"
        "  file-merge --delimiter tsv --key-index 0 --glob 'data/*.gz' --manifest data.manifest\n"
        "  file-merge --delimiter tsv --key-index 0 --manifest data.manifest \\\n"
        "      --key-type Unsigned32Integer --key-start 12345 --key-end 12347",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    keys = parser.add_argument_group("Merge key")
    keys.add_argument(
        "--delimiter",
        required=True,
        help="Field delimiter: tsv, csv, psv or a single character",
    )
    keys.add_argument(
        "--key-index",
        "--index",
        dest="key_index",
        type=int,
        required=True,
        metavar="N",
        help="Zero-based column index of the merge key",
    )
    keys.add_argument(
        "--key-type",
        default=KeyType.STRING.value,
        choices=[key_type.value for key_type in KeyType],
        help="Data type of the merge key (default: String)",
    )
    keys.add_argument("--key-start", help="Lower bound merge key (inclusive)")
    keys.add_argument("--key-end", help="Upper bound merge key (inclusive)")

    files = parser.add_argument_group("File selection")
    files.add_argument(
        "--glob",
        action="append",
        dest="glob_choices",
        default=[],
        metavar="PATTERN",
        help="File glob, directory or path to merge (can be used multiple times)",
    )
    files.add_argument(
        "--manifest",
        "--cache-file",
        dest="manifest_path",
        metavar="PATH",
        help="Manifest recording each file's key range and size",
    )
    files.add_argument(
        "--exclude",
        action="append",
        dest="exclude_patterns",
        default=[],
        metavar="PATTERN",
        help="Exclude files whose basename matches this glob (can be used multiple times)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="More output on stderr (-v info, -vv debug)",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only report errors on stderr (overrides --verbose)",
    )
    return parser


def load_settings(argv=None) -> MergeSettings:
    """
    Parse command-line arguments into MergeSettings.

    Usage errors exit through argparse (status 2).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        delimiter = parse_delimiter(args.delimiter)
    except ValueError as e:
        parser.error(str(e))

    if args.key_index < 0:
        parser.error("--key-index must be a non-negative integer")

    key_type = KeyType.from_name(args.key_type)

    def parse_bound(option, text):
        if text is None:
            return None
        try:
            return key_type.parse(text)
        except KeyParseError as e:
            parser.error(f"{option}: {e}")

    key_start = parse_bound("--key-start", args.key_start)
    key_end = parse_bound("--key-end", args.key_end)

    if not args.glob_choices and args.manifest_path is None:
        parser.error("Missing both --glob and --manifest, we need at least one of them")
    if not args.glob_choices and not os.path.isfile(args.manifest_path):
        parser.error(
            f"No --glob provided and the manifest {args.manifest_path} doesn't exist, "
            "nothing to merge"
        )

    return MergeSettings(
        delimiter=delimiter,
        key_index=args.key_index,
        key_type=key_type,
        key_start=key_start,
        key_end=key_end,
        manifest_path=args.manifest_path,
        glob_choices=list(args.glob_choices),
        exclude_patterns=list(args.exclude_patterns),
        verbosity=args.verbose,
        quiet=args.quiet,
    )
