"""
Merge Scheduler - k-way merge of source streams bounded by a key window

Merges every stream of a WorkingSet into one ordered sequence of records
using a min-heap keyed by each stream's current key. Only one record per
file is held in memory at a time.

Algorithm:
    1. seek_all() fast-forwards every stream to the start key; streams that
       end before it are dropped from the working set
    2. run() heapifies the remaining streams on (current_key, path)
    3. The smallest record is popped and written to the output
    4. Its stream is advanced: a new key within the window goes back on
       the heap, end-of-file or a key past the end bound retires it
    5. Continues until the heap is empty

Equal keys from different files are written in ascending path order.

The end bound is inclusive: a record whose key equals the end key is
written, the first record past it is consumed and discarded.

Performance:
    - Time Complexity: O(N log k) where N is records merged, k is number of files
    - Space Complexity: O(k) for the heap
"""

import heapq
import logging
import sys
from dataclasses import dataclass
from typing import BinaryIO, List, Optional

from ..keys import KeyValue
from ..source.source_stream import SeekExhaustedError, SourceStream
from .working_set import WorkingSet

logger = logging.getLogger(__name__)


@dataclass
class MergeStats:
    """Counters collected while seeking and merging."""

    records_merged: int = 0
    dropped_on_seek: int = 0
    retired_at_eof: int = 0
    retired_past_end: int = 0
    retired_on_error: int = 0

    @property
    def retired(self) -> int:
        return self.retired_at_eof + self.retired_past_end + self.retired_on_error


def seek_all(
    working_set: WorkingSet,
    start_key: Optional[KeyValue] = None,
    stats: Optional[MergeStats] = None,
) -> WorkingSet:
    """
    Fast-forward every stream to start_key.

    A stream that reaches end-of-file before start_key contributes nothing to
    the merge window and is removed from the working set.

    Args:
        working_set: Streams to position (modified in place)
        start_key: Inclusive lower bound, or None to leave streams untouched
        stats: Optional counters to update

    Returns:
        The same working set
    """
    if start_key is None:
        return working_set

    total = len(working_set)
    dropped = 0
    for stream in working_set:
        try:
            stream.fast_forward(start_key)
        except SeekExhaustedError as e:
            logger.info("[SEEK] Dropping %s", e)
            working_set.remove(stream.path)
            dropped += 1

    if stats is not None:
        stats.dropped_on_seek += dropped
    logger.info(
        "[SEEK] Fast-forwarded %d files to %s, %d dropped", total, start_key, dropped
    )
    return working_set


def _retire(stream: SourceStream, stats: MergeStats, past_end: bool = False) -> None:
    stream.close()
    if past_end:
        stats.retired_past_end += 1
    elif stream.error is not None:
        stats.retired_on_error += 1
    else:
        stats.retired_at_eof += 1


def run(
    working_set: WorkingSet,
    end_key: Optional[KeyValue] = None,
    emit: bool = True,
    output: Optional[BinaryIO] = None,
    stats: Optional[MergeStats] = None,
) -> List[SourceStream]:
    """
    Merge all streams of a working set in key order.

    The working set is consumed: it is empty when this returns.

    Args:
        working_set: Primed (and optionally seeked) streams
        end_key: Inclusive upper bound, or None to merge to end-of-file
        emit: Whether to write records to output
        output: Binary stream for merged records (default: stdout)
        stats: Optional counters to update

    Returns:
        Every stream of the working set, retired, in retirement order.
        Only streams retired at end-of-file carry an ending_key; those
        retired past end_key or on error keep it None.
    """
    if stats is None:
        stats = MergeStats()
    if emit and output is None:
        output = sys.stdout.buffer

    streams = working_set.take()
    logger.info("[MERGE] Starting merge of %d files...", len(streams))

    retired: List[SourceStream] = []
    heap = []
    for stream in streams:
        if stream.exhausted:
            _retire(stream, stats)
            retired.append(stream)
        elif end_key is not None and stream.current_key > end_key:
            _retire(stream, stats, past_end=True)
            retired.append(stream)
        else:
            # path is unique per working set, so streams themselves are never compared
            heap.append((stream.current_key, stream.path, stream))
    heapq.heapify(heap)

    while heap:
        _, path, stream = heapq.heappop(heap)
        if emit:
            output.write(stream.current_line)
            output.write(b"\n")
        stats.records_merged += 1

        key = stream.next()
        if key is None:
            _retire(stream, stats)
            retired.append(stream)
        elif end_key is not None and key > end_key:
            _retire(stream, stats, past_end=True)
            retired.append(stream)
        else:
            heapq.heappush(heap, (key, path, stream))

    if emit:
        output.flush()

    logger.info(
        "[MERGE] Complete: %d records merged, %d files retired "
        "(%d at EOF, %d past end key, %d on error)",
        stats.records_merged,
        stats.retired,
        stats.retired_at_eof,
        stats.retired_past_end,
        stats.retired_on_error,
    )
    return retired


def merge(
    working_set: WorkingSet,
    start_key: Optional[KeyValue] = None,
    end_key: Optional[KeyValue] = None,
    output: Optional[BinaryIO] = None,
) -> MergeStats:
    """Seek to start_key, then write every record up to end_key to output."""
    stats = MergeStats()
    seek_all(working_set, start_key, stats)
    run(working_set, end_key, emit=True, output=output, stats=stats)
    return stats
