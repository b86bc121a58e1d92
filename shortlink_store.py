#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Append-only result log (data.txt) + pending batch.

File format, one resolved entry per line, no header:
  <token>,<target>
target is empty for not-found entries. The same token may appear more than
once across runs; load() only builds a skip set, so duplicates cost space
but never correctness.

record() keeps entries in memory and appends the whole batch once it grows
past flush_threshold; flush() writes whatever is left at the end of a run.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, Iterator, Tuple

from shortlink_stats import Stats

DEFAULT_FLUSH_THRESHOLD = 10_000

log = logging.getLogger(__name__)


class StoreLoadError(RuntimeError):
    pass


@dataclass(frozen=True)
class ResolvedEntry:
    token: str
    target: str = ""

    @property
    def is_redirect(self) -> bool:
        return bool(self.target)


@dataclass(frozen=True)
class LoadResult:
    tokens: FrozenSet[str]
    redirects: int
    not_found: int


# ---------------------------
# Line format
# ---------------------------

def format_line(entry: ResolvedEntry) -> str:
    # a comma inside the target would make the line unloadable
    target = entry.target.replace(",", "%2C")
    return f"{entry.token},{target}\n"


def parse_line(line: str, lineno: int = 0, source: str = "") -> Tuple[str, str]:
    parts = line.rstrip("\r\n").split(",")
    if len(parts) != 2:
        raise StoreLoadError(
            f"{source or 'log'}:{lineno}: expected 'token,target', got {len(parts)} field(s): {line.rstrip()!r}"
        )
    return parts[0], parts[1]


def iter_entries(path: Path) -> Iterator[ResolvedEntry]:
    """Yield every entry of the log, in file order. Missing file yields nothing."""
    if not path.exists():
        return
    with path.open("r", encoding="utf-8", newline="") as f:
        for lineno, line in enumerate(f, start=1):
            if not line.strip():
                continue
            token, target = parse_line(line, lineno, str(path))
            yield ResolvedEntry(token=token, target=target)


# ---------------------------
# Store
# ---------------------------

class ResultStore:
    def __init__(self, path: Path, stats: Stats, flush_threshold: int = DEFAULT_FLUSH_THRESHOLD):
        if flush_threshold < 1:
            raise ValueError("flush_threshold must be >= 1")
        self.path = Path(path)
        self.stats = stats
        self.flush_threshold = flush_threshold

        self._lock = threading.Lock()
        self._pending: Dict[str, ResolvedEntry] = {}

        self.flushes = 0
        self.written = 0
        self.lost = 0

    def load(self) -> LoadResult:
        """
        Read the log into a skip set.

        Returns the set plus the redirect / not-found counts seen while
        scanning; the caller decides where that baseline goes (see load_into).
        A malformed line raises StoreLoadError.
        """
        tokens = set()
        redirects = 0
        not_found = 0
        for entry in iter_entries(self.path):
            if entry.is_redirect:
                redirects += 1
            else:
                not_found += 1
            tokens.add(entry.token)
        log.info("Loaded %s lines (%s unique tokens) from %s", redirects + not_found, len(tokens), self.path)
        return LoadResult(tokens=frozenset(tokens), redirects=redirects, not_found=not_found)

    def load_into(self, stats: Stats) -> FrozenSet[str]:
        res = self.load()
        stats.apply_baseline(res.redirects, res.not_found)
        return res.tokens

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def record(self, entry: ResolvedEntry) -> None:
        with self._lock:
            self._pending[entry.token] = entry
            if entry.is_redirect:
                self.stats.incr("total_redirect")
            else:
                self.stats.incr("total_not_found")
            if len(self._pending) > self.flush_threshold:
                self._flush_locked()

    def flush(self) -> None:
        with self._lock:
            self._flush_locked()

    def _flush_locked(self) -> None:
        batch, self._pending = self._pending, {}
        if not batch:
            return
        self.flushes += 1
        done = 0
        try:
            # line buffered, so `done` matches what reached the file
            with self.path.open("a", encoding="utf-8", newline="\n", buffering=1) as f:
                for entry in batch.values():
                    f.write(format_line(entry))
                    done += 1
        except OSError as e:
            self.written += done
            self.lost += len(batch) - done
            log.error("save failed: %s (%s of %s entries dropped)", e, len(batch) - done, len(batch))
            return
        self.written += done
        log.info("Saved %s entries to %s", len(batch), self.path)
