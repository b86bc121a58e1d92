#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Run statistics shared by the driver, the probe workers and the store.

One Stats object is built per run and passed around explicitly. Every
increment and read takes a short private lock, so the reporter can read at
any time while workers (tasks or threads) keep writing.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class StatsSnapshot:
    total: int
    total_redirect: int
    total_not_found: int
    requests: int
    request_errors: int
    request_not_found: int
    request_success: int
    elapsed_s: float
    rate: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class Stats:
    # cumulative: total, total_redirect, total_not_found (baseline from load included)
    # per run: requests, request_errors, request_not_found, request_success
    FIELDS = (
        "total",
        "total_redirect",
        "total_not_found",
        "requests",
        "request_errors",
        "request_not_found",
        "request_success",
    )

    def __init__(self, started_at: Optional[float] = None):
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {name: 0 for name in self.FIELDS}
        self.started_at = time.monotonic() if started_at is None else started_at

    def incr(self, name: str, n: int = 1) -> None:
        if name not in self._counters:
            raise KeyError(f"unknown counter: {name}")
        with self._lock:
            self._counters[name] += n

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def apply_baseline(self, redirects: int, not_found: int) -> None:
        """Add the counts found while loading the persisted log."""
        with self._lock:
            self._counters["total_redirect"] += redirects
            self._counters["total_not_found"] += not_found

    def elapsed(self) -> float:
        return max(time.monotonic() - self.started_at, 1e-6)

    def rate(self) -> float:
        return self.get("requests") / self.elapsed()

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            c = dict(self._counters)
        elapsed = self.elapsed()
        return StatsSnapshot(elapsed_s=elapsed, rate=c["requests"] / elapsed, **c)

    # convenience accessors for the reporter
    @property
    def total(self) -> int:
        return self.get("total")

    @property
    def total_redirect(self) -> int:
        return self.get("total_redirect")

    @property
    def total_not_found(self) -> int:
        return self.get("total_not_found")

    @property
    def requests(self) -> int:
        return self.get("requests")

    @property
    def request_errors(self) -> int:
        return self.get("request_errors")

    @property
    def request_not_found(self) -> int:
        return self.get("request_not_found")

    @property
    def request_success(self) -> int:
        return self.get("request_success")
