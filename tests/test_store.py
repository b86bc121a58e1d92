"""Tests for the result log and pending batch."""

import logging
import threading
from unittest import mock

import pytest

from shortlink_store import (
    DEFAULT_FLUSH_THRESHOLD,
    ResolvedEntry,
    ResultStore,
    StoreLoadError,
    format_line,
    parse_line,
)


def read_lines(path):
    return path.read_text(encoding="utf-8").splitlines()


class TestLoad:
    def test_missing_file_is_empty(self, store):
        res = store.load()
        assert res.tokens == frozenset()
        assert res.redirects == 0
        assert res.not_found == 0

    def test_counts_and_tokens(self, data_path, store, stats):
        data_path.write_text("abc,https://example.com\ndef,\n", encoding="utf-8")
        res = store.load()
        assert res.tokens == {"abc", "def"}
        assert res.redirects == 1
        assert res.not_found == 1
        # load alone leaves stats untouched; the delta is applied explicitly
        assert stats.total_redirect == 0

    def test_load_into_applies_baseline(self, data_path, store, stats):
        data_path.write_text("abc,https://example.com\ndef,\n", encoding="utf-8")
        tokens = store.load_into(stats)
        assert tokens == {"abc", "def"}
        assert stats.total_redirect == 1
        assert stats.total_not_found == 1

    def test_duplicates_are_tolerated(self, data_path, store):
        data_path.write_text("abc,https://a.example\nabc,\nabc,https://b.example\n", encoding="utf-8")
        res = store.load()
        assert res.tokens == {"abc"}
        assert res.redirects == 2
        assert res.not_found == 1

    def test_blank_lines_ignored(self, data_path, store):
        data_path.write_text("abc,\n\n", encoding="utf-8")
        assert store.load().tokens == {"abc"}

    def test_single_field_is_fatal(self, data_path, store):
        data_path.write_text("abc,\nonlyonefield\n", encoding="utf-8")
        with pytest.raises(StoreLoadError) as exc:
            store.load()
        assert ":2:" in str(exc.value)

    def test_three_fields_is_fatal(self, data_path, store):
        data_path.write_text("a,b,c\n", encoding="utf-8")
        with pytest.raises(StoreLoadError):
            store.load()


class TestLineFormat:
    def test_format(self):
        assert format_line(ResolvedEntry("abc", "https://example.com")) == "abc,https://example.com\n"
        assert format_line(ResolvedEntry("def", "")) == "def,\n"

    def test_comma_in_target_stays_loadable(self):
        line = format_line(ResolvedEntry("abc", "https://example.com/?q=a,b"))
        assert parse_line(line) == ("abc", "https://example.com/?q=a%2Cb")


class TestRecordAndFlush:
    def test_record_updates_cumulative_counters(self, store, stats):
        store.record(ResolvedEntry("a", "https://x.example"))
        store.record(ResolvedEntry("b", ""))
        assert stats.total_redirect == 1
        assert stats.total_not_found == 1
        assert store.pending_count() == 2

    def test_record_overwrites_same_token(self, store, data_path):
        store.record(ResolvedEntry("a", ""))
        store.record(ResolvedEntry("a", "https://x.example"))
        assert store.pending_count() == 1
        store.flush()
        assert read_lines(data_path) == ["a,https://x.example"]

    def test_threshold_triggers_exactly_one_flush(self, store, data_path):
        assert store.flush_threshold == DEFAULT_FLUSH_THRESHOLD
        for i in range(DEFAULT_FLUSH_THRESHOLD):
            store.record(ResolvedEntry(f"t{i}", ""))
        assert store.flushes == 0
        assert not data_path.exists()

        store.record(ResolvedEntry(f"t{DEFAULT_FLUSH_THRESHOLD}", ""))
        assert store.flushes == 1
        assert store.pending_count() == 0
        assert len(read_lines(data_path)) == DEFAULT_FLUSH_THRESHOLD + 1

        for i in range(5):
            store.record(ResolvedEntry(f"extra{i}", ""))
        assert store.flushes == 1
        assert store.pending_count() <= 5

    def test_flush_appends(self, store, data_path):
        data_path.write_text("old,\n", encoding="utf-8")
        store.record(ResolvedEntry("new", "https://x.example"))
        store.flush()
        assert read_lines(data_path) == ["old,", "new,https://x.example"]
        assert store.pending_count() == 0

    def test_flush_empty_keeps_existing_content(self, store, data_path):
        data_path.write_text("abc,\n", encoding="utf-8")
        store.flush()
        assert data_path.read_text(encoding="utf-8") == "abc,\n"

    def test_flush_empty_without_file(self, store, data_path):
        store.flush()
        assert not data_path.exists() or data_path.read_text(encoding="utf-8") == ""

    def test_append_failure_is_reported_not_raised(self, tmp_path, stats, caplog):
        target_dir = tmp_path / "is_a_dir"
        target_dir.mkdir()
        store = ResultStore(target_dir, stats)
        store.record(ResolvedEntry("a", ""))
        with caplog.at_level(logging.ERROR, logger="shortlink_store"):
            store.flush()
        assert store.lost == 1
        assert store.pending_count() == 0
        assert "save failed" in caplog.text

    def test_partial_write_counts_what_reached_disk(self, data_path, stats):
        class FailingFile:
            def __init__(self):
                self.lines = []

            def write(self, s):
                if len(self.lines) == 2:
                    raise OSError(28, "No space left on device")
                self.lines.append(s)

            def __enter__(self):
                return self

            def __exit__(self, *exc):
                return False

        fake = FailingFile()
        path = mock.Mock()
        path.open.return_value = fake
        store = ResultStore(data_path, stats)
        store.path = path
        for t in "abcde":
            store.record(ResolvedEntry(t, ""))
        store.flush()

        assert fake.lines == ["a,\n", "b,\n"]
        assert store.written == 2
        assert store.lost == 3
        assert store.pending_count() == 0

    def test_written_log_reloads(self, data_path, stats):
        store = ResultStore(data_path, stats, flush_threshold=2)
        store.record(ResolvedEntry("a", "https://x.example/a,b"))
        store.record(ResolvedEntry("b", ""))
        store.record(ResolvedEntry("c", ""))
        store.flush()
        res = ResultStore(data_path, stats).load()
        assert res.tokens == {"a", "b", "c"}

    def test_bad_threshold(self, data_path, stats):
        with pytest.raises(ValueError):
            ResultStore(data_path, stats, flush_threshold=0)


def test_concurrent_record_loses_nothing(data_path, stats):
    store = ResultStore(data_path, stats, flush_threshold=300)
    per_thread = 500

    def worker(n):
        for i in range(per_thread):
            store.record(ResolvedEntry(f"w{n}-{i}", "https://x.example" if i % 2 else ""))

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    store.flush()

    lines = read_lines(data_path)
    assert len(lines) == 8 * per_thread
    assert {line.split(",")[0] for line in lines} == {f"w{n}-{i}" for n in range(8) for i in range(per_thread)}
    assert stats.total_redirect + stats.total_not_found == 8 * per_thread
