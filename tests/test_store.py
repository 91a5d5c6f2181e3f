import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from lineclaim.store import (
    LineStore,
    StoreIOError,
    clean_lines,
    ensure_text_file,
    normalize_lines,
)


class LineHelpersTests(unittest.TestCase):
    def test_clean_lines_trims_and_drops_blanks_but_keeps_duplicates(self) -> None:
        self.assertEqual(clean_lines([" a ", "", "b", "   ", "a", 7]), ["a", "b", "a", "7"])

    def test_clean_lines_drops_values_that_are_not_valid_utf8(self) -> None:
        self.assertEqual(clean_lines(["ok", "\ud800", "a\udfffb", " é "]), ["ok", "é"])

    def test_normalize_lines_keeps_first_occurrence_order(self) -> None:
        self.assertEqual(normalize_lines(["b", " a", "b ", "c", "a"]), ["b", "a", "c"])


class LineStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / "data" / "provided.txt"

    def test_load_creates_empty_log_on_first_use(self) -> None:
        store = LineStore(self.path)

        self.assertEqual(store.load(), set())
        self.assertTrue(self.path.exists())
        self.assertEqual(self.path.read_text(encoding="utf-8"), "")

    def test_ensure_initialized_is_idempotent_and_keeps_content(self) -> None:
        store = LineStore(self.path)
        store.ensure_initialized()
        store.append_unique(["a"])

        store.ensure_initialized()
        store.ensure_initialized()

        self.assertEqual(self.path.read_text(encoding="utf-8"), "a\n")

    def test_append_unique_writes_one_record_per_distinct_line(self) -> None:
        store = LineStore(self.path)

        written = store.append_unique([" a ", "b", "", "a", "c "])

        self.assertEqual(written, 3)
        self.assertEqual(self.path.read_text(encoding="utf-8"), "a\nb\nc\n")
        self.assertEqual(store.load(), {"a", "b", "c"})

    def test_append_unique_skips_lines_that_are_not_valid_utf8(self) -> None:
        store = LineStore(self.path)

        self.assertEqual(store.append_unique(["ok1", "\ud800"]), 1)
        self.assertEqual(self.path.read_text(encoding="utf-8"), "ok1\n")

    def test_append_unique_with_only_blanks_is_a_noop(self) -> None:
        store = LineStore(self.path)

        self.assertEqual(store.append_unique(["", "   "]), 0)
        self.assertFalse(self.path.exists())

    def test_load_trims_records_and_ignores_blank_and_crlf_lines(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_bytes(b"  a\r\n\r\nb\n\n a \nc")
        store = LineStore(self.path)

        self.assertEqual(store.load(), {"a", "b", "c"})

    def test_append_after_unterminated_record_keeps_records_separate(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text("a", encoding="utf-8")
        store = LineStore(self.path)

        store.append_unique(["b"])

        self.assertEqual(self.path.read_text(encoding="utf-8"), "a\nb\n")
        self.assertEqual(store.load(), {"a", "b"})

    def test_append_new_counts_only_lines_not_already_recorded(self) -> None:
        store = LineStore(self.path)
        store.append_unique(["a", "b"])

        added = store.append_new(["b", "c", "c", " ", "d"])

        self.assertEqual(added, 2)
        self.assertEqual(self.path.read_text(encoding="utf-8"), "a\nb\nc\nd\n")

    def test_unreadable_log_raises_store_io_error(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_bytes(b"\xff\xfe\xfa\n")
        store = LineStore(self.path)

        with self.assertRaises(StoreIOError) as ctx:
            store.load()
        self.assertEqual(ctx.exception.operation, "read")

    def test_failed_write_leaves_no_partial_record(self) -> None:
        store = LineStore(self.path)
        store.append_unique(["a"])
        real_write = os.write

        def short_then_fail(fd: int, data) -> int:
            real_write(fd, bytes(data[:2]))
            raise OSError(28, "No space left on device")

        with mock.patch("lineclaim.store.os.write", side_effect=short_then_fail):
            with self.assertRaises(StoreIOError) as ctx:
                store.append_unique(["bbbb", "cccc"])

        self.assertEqual(ctx.exception.operation, "append")
        self.assertEqual(self.path.read_text(encoding="utf-8"), "a\n")
        self.assertEqual(store.load(), {"a"})

    def test_cached_store_tracks_its_own_appends(self) -> None:
        store = LineStore(self.path, cache=True)
        self.assertEqual(store.load(), set())

        store.append_unique(["a", "b"])
        store.append_new(["b", "c"])

        self.assertEqual(store.load(), {"a", "b", "c"})
        self.assertEqual(LineStore(self.path).load(), {"a", "b", "c"})

    def test_cached_snapshot_is_a_copy(self) -> None:
        store = LineStore(self.path, cache=True)
        snapshot = store.load()
        snapshot.add("not-persisted")

        self.assertEqual(store.load(), set())

    def test_read_text_returns_raw_log(self) -> None:
        store = LineStore(self.path)
        store.append_unique(["x", "y"])

        self.assertEqual(store.read_text(), "x\ny\n")


class EnsureTextFileTests(unittest.TestCase):
    def test_seeds_only_when_missing(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "nested" / "keys.txt"

            self.assertTrue(ensure_text_file(path, ["k1|2026-01-01"]))
            path.write_text("edited\n", encoding="utf-8")
            self.assertFalse(ensure_text_file(path, ["k1|2026-01-01"]))

            self.assertEqual(path.read_text(encoding="utf-8"), "edited\n")
