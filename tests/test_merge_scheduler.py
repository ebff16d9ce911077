#!/usr/bin/env python3
"""
Test Suite for merge_scheduler.py - K-Way Merge of Source Streams
=================================================================

Validates seek_all() and run(): global key order, the start/end key
window, retirement of every stream and the handling of streams that fail
mid-merge.

WHAT IS K-WAY MERGE?
====================
1. Each file contributes its current record to a min-heap
2. The smallest record is written and its file advances by one record
3. Files leave the heap at end-of-file or once they pass the end key

RUNNING THE TESTS
=================
    pytest tests/test_merge_scheduler.py -v

TEST COVERAGE SUMMARY
=====================
1. TestSeekAll - fast-forward to start key, dropping exhausted streams
2. TestRun - order, completeness, window bounds, retirement, ties
3. TestScenarios - the two-file windowed merge end to end
"""

import gzip
import io
import os
import random
import tempfile
import unittest
from pathlib import Path

from file_merge_tools.keys import KeyType
from file_merge_tools.merge.merge_scheduler import MergeStats, merge, run, seek_all
from file_merge_tools.merge.working_set import WorkingSet

U32 = KeyType.UNSIGNED_32


class MergeTestCase(unittest.TestCase):
    def setUp(self):
        """Create temporary directory for test files"""
        self.test_dir = tempfile.TemporaryDirectory()
        self.test_path = Path(self.test_dir.name)

    def tearDown(self):
        """Clean up temporary directory"""
        self.test_dir.cleanup()

    def create_test_file(self, filename, lines):
        """Helper to create a test file with given lines"""
        file_path = self.test_path / filename
        data = "\n".join(lines) + "\n" if lines else ""
        if filename.endswith(".gz"):
            with gzip.open(str(file_path), "wt", encoding="utf-8") as fh:
                fh.write(data)
        else:
            file_path.write_text(data, encoding="utf-8")
        return str(file_path)

    def working_set(self, key_type=U32, pattern="*.tsv*"):
        return WorkingSet.from_glob(str(self.test_path / pattern), "\t", 0, key_type)

    @staticmethod
    def keys_of(output, key_type=U32):
        lines = output.getvalue().decode("utf-8").splitlines()
        return [key_type.parse(line.split("\t", 1)[0]).value for line in lines]


class TestSeekAll(MergeTestCase):
    """Test cases for seek_all"""

    def test_no_start_key_leaves_streams_untouched(self):
        self.create_test_file("a.tsv", ["1\tx", "2\tx"])
        working_set = self.working_set()
        self.assertIs(seek_all(working_set, None), working_set)
        self.assertEqual(working_set.streams()[0].current_key.value, 1)

    def test_streams_positioned_at_start(self):
        self.create_test_file("a.tsv", ["1\tx", "5\tx", "9\tx"])
        self.create_test_file("b.tsv", ["6\tx", "7\tx"])
        working_set = seek_all(self.working_set(), U32.parse("5"))
        keys = sorted(s.current_key.value for s in working_set)
        self.assertEqual(keys, [5, 6])

    def test_exhausted_streams_are_dropped(self):
        self.create_test_file("a.tsv", ["1\tx", "2\tx"])
        b = self.create_test_file("b.tsv", ["3\tx", "8\tx"])
        stats = MergeStats()
        working_set = seek_all(self.working_set(), U32.parse("4"), stats)
        self.assertEqual(len(working_set), 1)
        self.assertIn(str(Path(b).resolve()), [str(Path(p).resolve()) for p in working_set.paths()])
        self.assertEqual(stats.dropped_on_seek, 1)


class TestRun(MergeTestCase):
    """Test cases for run"""

    def test_unbounded_merge_is_ordered_and_complete(self):
        rng = random.Random(42)
        expected = []
        for i in range(8):
            keys = sorted(rng.randrange(0, 500) for _ in range(rng.randrange(1, 60)))
            lines = [f"{k}\tfile{i}-row{n}" for n, k in enumerate(keys)]
            expected.extend(lines)
            self.create_test_file(f"part{i}.tsv", lines)

        output = io.BytesIO()
        retired = run(self.working_set(), output=output)

        lines = output.getvalue().decode("utf-8").splitlines()
        keys = [int(line.split("\t")[0]) for line in lines]
        self.assertEqual(keys, sorted(keys))
        self.assertEqual(sorted(lines), sorted(expected))
        self.assertEqual(len(retired), 8)

    def test_output_is_byte_identical(self):
        self.create_test_file("a.tsv", ["1\t  spaced  \tend", "3\tx"])
        self.create_test_file("b.tsv", ["2\tàéíóú"])
        output = io.BytesIO()
        run(self.working_set(), output=output)
        self.assertEqual(
            output.getvalue(),
            "1\t  spaced  \tend\n2\tàéíóú\n3\tx\n".encode("utf-8"),
        )

    def test_mixed_compression(self):
        self.create_test_file("a.tsv.gz", ["1\ta", "4\ta"])
        self.create_test_file("b.tsv", ["2\tb", "3\tb"])
        output = io.BytesIO()
        run(self.working_set(), output=output)
        self.assertEqual(self.keys_of(output), [1, 2, 3, 4])

    def test_end_key_is_inclusive(self):
        self.create_test_file("a.tsv", ["1\tx", "2\tx", "3\tx", "4\tx"])
        output = io.BytesIO()
        stats = MergeStats()
        retired = run(self.working_set(), U32.parse("3"), output=output, stats=stats)
        self.assertEqual(self.keys_of(output), [1, 2, 3])
        self.assertEqual(stats.retired_past_end, 1)
        # The record past the end bound was consumed, never emitted
        self.assertEqual(retired[0].current_key.value, 4)
        self.assertIsNone(retired[0].ending_key)

    def test_ending_key_only_for_streams_read_to_eof(self):
        a = self.create_test_file("a.tsv", ["1\tx", "2\tx"])
        b = self.create_test_file("b.tsv", ["3\tx", "9\tx"])
        retired = {
            os.path.basename(s.path): s
            for s in run(self.working_set(), U32.parse("5"), emit=False)
        }
        self.assertEqual(retired[os.path.basename(a)].ending_key.value, 2)
        self.assertIsNone(retired[os.path.basename(b)].ending_key)

    def test_stream_starting_past_end_is_retired_unread(self):
        self.create_test_file("a.tsv", ["1\tx"])
        self.create_test_file("b.tsv", ["50\tx", "60\tx"])
        output = io.BytesIO()
        retired = run(self.working_set(), U32.parse("10"), output=output)
        self.assertEqual(self.keys_of(output), [1])
        self.assertEqual(len(retired), 2)
        self.assertTrue(all(s.closed for s in retired))

    def test_window_bounds(self):
        rng = random.Random(7)
        for i in range(5):
            keys = sorted(rng.randrange(0, 200) for _ in range(40))
            self.create_test_file(f"p{i}.tsv", [f"{k}\t{i}" for k in keys])

        start, end = U32.parse("50"), U32.parse("120")
        output = io.BytesIO()
        stats = merge(self.working_set(), start, end, output=output)
        keys = self.keys_of(output)
        self.assertTrue(keys)
        self.assertTrue(all(50 <= k <= 120 for k in keys))
        self.assertEqual(keys, sorted(keys))
        self.assertEqual(stats.records_merged, len(keys))

    def test_every_stream_retired_once(self):
        paths = [self.create_test_file(f"f{i}.tsv", [f"{i}\tx", f"{i + 10}\tx"]) for i in range(6)]
        retired = run(self.working_set(), U32.parse("12"), emit=False)
        retired_paths = [s.path for s in retired]
        self.assertEqual(len(retired_paths), len(set(retired_paths)))
        self.assertEqual(
            sorted(str(Path(p).resolve()) for p in retired_paths),
            sorted(str(Path(p).resolve()) for p in paths),
        )

    def test_run_consumes_working_set(self):
        self.create_test_file("a.tsv", ["1\tx"])
        working_set = self.working_set()
        run(working_set, emit=False)
        self.assertEqual(len(working_set), 0)

    def test_emit_false_writes_nothing(self):
        self.create_test_file("a.tsv", ["1\tx", "2\tx"])
        output = io.BytesIO()
        stats = MergeStats()
        retired = run(self.working_set(), emit=False, output=output, stats=stats)
        self.assertEqual(output.getvalue(), b"")
        self.assertEqual(stats.records_merged, 2)
        self.assertEqual(retired[0].ending_key.value, 2)

    def test_equal_keys_ordered_by_path(self):
        self.create_test_file("b.tsv", ["5\tfrom-b"])
        self.create_test_file("a.tsv", ["5\tfrom-a"])
        self.create_test_file("c.tsv", ["5\tfrom-c"])
        output = io.BytesIO()
        run(self.working_set(), output=output)
        self.assertEqual(output.getvalue(), b"5\tfrom-a\n5\tfrom-b\n5\tfrom-c\n")

    def test_malformed_record_retires_only_its_stream(self):
        self.create_test_file("a.tsv", ["1\tx", "bad\tx", "5\tx"])
        self.create_test_file("b.tsv", ["2\ty", "3\ty", "4\ty"])
        output = io.BytesIO()
        stats = MergeStats()
        with self.assertLogs("file_merge_tools.source.source_stream", level="WARNING"):
            retired = run(self.working_set(), output=output, stats=stats)
        self.assertEqual(self.keys_of(output), [1, 2, 3, 4])
        self.assertEqual(stats.retired_on_error, 1)
        self.assertEqual(stats.retired_at_eof, 1)
        self.assertEqual(len(retired), 2)

    def test_string_keys(self):
        self.create_test_file("a.tsv", ["apple\t1", "cherry\t1"])
        self.create_test_file("b.tsv", ["banana\t2", "date\t2"])
        output = io.BytesIO()
        run(self.working_set(KeyType.STRING), output=output)
        self.assertEqual(
            output.getvalue().decode().split(),
            ["apple", "1", "banana", "2", "cherry", "1", "date", "2"],
        )

    def test_signed_keys(self):
        self.create_test_file("a.tsv", ["-5\tx", "3\tx"])
        self.create_test_file("b.tsv", ["-10\ty", "0\ty"])
        output = io.BytesIO()
        run(self.working_set(KeyType.SIGNED_32), output=output)
        self.assertEqual(self.keys_of(output, KeyType.SIGNED_32), [-10, -5, 0, 3])

    def test_empty_working_set(self):
        output = io.BytesIO()
        self.assertEqual(run(WorkingSet(), output=output), [])
        self.assertEqual(output.getvalue(), b"")


class TestScenarios(MergeTestCase):
    def test_two_file_window(self):
        """
        A: 123,124,125  B: 124,125,127  start=124 end=126

        Emits 124,124,125,125; 127 from B is discarded; both streams retire.
        """
        self.create_test_file("A.tsv", ["123\ta1", "124\ta2", "125\ta3"])
        self.create_test_file("B.tsv", ["124\tb1", "125\tb2", "127\tb3"])
        for key_type in (U32, KeyType.STRING):
            with self.subTest(key_type=key_type):
                working_set = self.working_set(key_type)
                seek_all(working_set, key_type.parse("124"))
                output = io.BytesIO()
                end = key_type.parse("126")
                retired = run(working_set, end, emit=True, output=output)

                lines = output.getvalue().decode().splitlines()
                self.assertEqual(
                    [line.split("\t")[0] for line in lines], ["124", "124", "125", "125"]
                )
                self.assertNotIn("127\tb3", lines)
                self.assertEqual(len(retired), 2)
                for stream in retired:
                    self.assertTrue(stream.ending_key is None or stream.ending_key <= end)


if __name__ == "__main__":
    unittest.main()
