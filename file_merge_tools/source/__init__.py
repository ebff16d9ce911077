"""Source module - Per-file readers, decompression lookup and file discovery."""

from .decompression import register_decompressor
from .file_discovery import expand_glob
from .source_stream import (
    EmptyOrUnreadableError,
    IoFailureError,
    NoExtensionError,
    OpenError,
    SeekExhaustedError,
    SourceStream,
)

__all__ = [
    "SourceStream",
    "OpenError",
    "NoExtensionError",
    "IoFailureError",
    "EmptyOrUnreadableError",
    "SeekExhaustedError",
    "expand_glob",
    "register_decompressor",
]
