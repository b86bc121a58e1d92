#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Range driver: enumerate [start, end), encode, probe, persist.

The producer pushes one WorkItem per identifier into a bounded queue (a full
queue blocks the producer, nothing is buffered beyond queue_size). A
collector counts completions; the run returns once exactly `submitted`
completions have been seen, then stops the pool and flushes the store.
Interrupted runs still flush what was resolved, and the next run skips
those tokens through the store's skip set.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, asdict
from typing import AbstractSet, Any, Callable, Dict, Optional

from shortlink_codec import build_probe_url, iter_work
from shortlink_config import ResolverConfig
from shortlink_probe import Outcome, OutcomeKind, ProbePool, WorkItem
from shortlink_stats import Stats
from shortlink_store import ResultStore

log = logging.getLogger(__name__)

OutcomeCallback = Callable[[Outcome], None]


@dataclass
class RangeReport:
    start: int
    end: int
    submitted: int = 0
    completed: int = 0
    success: int = 0
    not_found: int = 0
    errors: int = 0
    skipped: int = 0

    def count(self, outcome: Outcome) -> None:
        self.completed += 1
        if outcome.kind is OutcomeKind.SUCCESS:
            self.success += 1
        elif outcome.kind is OutcomeKind.NOT_FOUND:
            self.not_found += 1
        elif outcome.kind is OutcomeKind.SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class _Completion:
    """Done once the producer has sealed the count and every item came back."""

    def __init__(self, report: RangeReport):
        self.report = report
        self.sealed = False
        self.done = asyncio.Event()

    def seal(self) -> None:
        self.sealed = True
        self._check()

    def add(self, outcome: Outcome) -> None:
        self.report.count(outcome)
        self._check()

    def _check(self) -> None:
        if self.sealed and self.report.completed >= self.report.submitted:
            self.done.set()


class RangeResolver:
    def __init__(self, config: ResolverConfig, stats: Stats, store: ResultStore, skip: AbstractSet[str]):
        self.config = config
        self.stats = stats
        self.store = store
        self.skip = skip

    async def resolve_range(self, start: int, end: int, on_outcome: Optional[OutcomeCallback] = None) -> RangeReport:
        cfg = self.config
        items = iter_work(start, end)  # validates bounds before anything starts

        queue: asyncio.Queue[WorkItem] = asyncio.Queue(maxsize=cfg.queue_size)
        completions: asyncio.Queue[Outcome] = asyncio.Queue(maxsize=cfg.queue_size)
        report = RangeReport(start=start, end=end)
        tracker = _Completion(report)

        pool = ProbePool(cfg, self.stats, self.store, self.skip)
        pool.start(queue, completions)
        collector = asyncio.create_task(self._collect(completions, tracker, on_outcome))
        log.info("Resolving range %s-%s with %s workers against %s", start, end, cfg.workers, cfg.base_url)

        try:
            for ident, token in items:
                await queue.put(WorkItem(ident, token, build_probe_url(cfg.base_url, token)))
                report.submitted += 1
            tracker.seal()
            log.info("Enqueued %s identifiers. Waiting for completion...", report.submitted)
            await tracker.done.wait()
        finally:
            await pool.shutdown()
            collector.cancel()
            await asyncio.gather(collector, return_exceptions=True)
            self.store.flush()

        log.info(
            "Range %s-%s done: %s submitted, %s success, %s 404, %s error, %s skipped",
            start, end, report.submitted, report.success, report.not_found, report.errors, report.skipped,
        )
        return report

    async def _collect(
        self,
        completions: "asyncio.Queue[Outcome]",
        tracker: _Completion,
        on_outcome: Optional[OutcomeCallback],
    ) -> None:
        while True:
            outcome = await completions.get()
            tracker.add(outcome)
            if on_outcome is not None:
                try:
                    on_outcome(outcome)
                except Exception:
                    log.exception("outcome callback failed for token %r", outcome.token)
            completions.task_done()


async def run_range(
    config: ResolverConfig,
    start: int,
    end: int,
    stats: Optional[Stats] = None,
    on_outcome: Optional[OutcomeCallback] = None,
) -> RangeReport:
    """Load the skip set from config.data_path, then resolve [start, end)."""
    stats = stats if stats is not None else Stats()
    store = ResultStore(config.data_path, stats, flush_threshold=config.flush_threshold)
    skip = store.load_into(stats)
    resolver = RangeResolver(config, stats, store, skip)
    return await resolver.resolve_range(start, end, on_outcome=on_outcome)
