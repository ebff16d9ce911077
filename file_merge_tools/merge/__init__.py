"""Merge module - Working sets and the heap-based k-way merge scheduler."""

from .merge_scheduler import MergeStats, merge, run, seek_all
from .working_set import WorkingSet

__all__ = ["WorkingSet", "MergeStats", "seek_all", "run", "merge"]
