"""Base exception shared by the merge, source and manifest modules."""


class FileMergeError(Exception):
    """Base class for all file-merge errors."""
