#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Probe worker pool.

Each worker owns one aiohttp session (own connector, own DNS cache), pulls
WorkItems from the shared queue and sends one HEAD per item, never following
redirects:
  302 + Location  -> SUCCESS   (recorded)
  404             -> NOT_FOUND (recorded, empty target)
  anything else   -> ERROR     (counted only)
Tokens already in the skip set are answered with SKIPPED and no request.
Every item yields exactly one Outcome on the completion queue. No retries.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import AbstractSet, List, Optional, Set

import aiohttp
from aiohttp import hdrs
from aiohttp.abc import AbstractResolver
from yarl import URL

from dns_cache import CachingResolver
from shortlink_config import ResolverConfig
from shortlink_stats import Stats
from shortlink_store import ResolvedEntry, ResultStore

log = logging.getLogger(__name__)


class OutcomeKind(str, enum.Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class WorkItem:
    ident: int
    token: str
    url: str


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    token: str
    entry: Optional[ResolvedEntry] = None
    status: Optional[int] = None
    error: Optional[str] = None


# ---------------------------
# HTTP
# ---------------------------

def build_session(cfg: ResolverConfig, resolver: AbstractResolver) -> aiohttp.ClientSession:
    connector = aiohttp.TCPConnector(
        limit=0,
        limit_per_host=cfg.idle_per_host,
        resolver=resolver,
        use_dns_cache=False,
    )
    timeout = aiohttp.ClientTimeout(total=cfg.timeout_s, sock_connect=cfg.timeout_s)
    return aiohttp.ClientSession(
        connector=connector,
        timeout=timeout,
        headers={"User-Agent": cfg.user_agent},
    )


def resolve_location(location: Optional[str], request_url: URL) -> str:
    """Absolute redirect target; relative Locations are joined to the request URL."""
    if not location:
        raise ValueError("redirect without Location header")
    # undecodable bytes arrive surrogate-escaped; yarl would drop them silently
    for ch in location:
        if ord(ch) < 0x20 or ch == "\x7f" or "\udc80" <= ch <= "\udcff":
            raise ValueError(f"invalid character {ch!r} in Location: {location!r}")
    target = request_url.join(URL(location))
    if not target.is_absolute():
        raise ValueError(f"unresolvable Location: {location!r}")
    return str(target)


def classify_response(token: str, status: int, location: Optional[str], request_url: URL) -> Outcome:
    if status == 302:
        try:
            target = resolve_location(location, request_url)
        except (ValueError, TypeError) as e:
            return Outcome(OutcomeKind.ERROR, token, status=status, error=f"bad Location: {e}")
        return Outcome(OutcomeKind.SUCCESS, token, entry=ResolvedEntry(token, target), status=status)
    if status == 404:
        return Outcome(OutcomeKind.NOT_FOUND, token, entry=ResolvedEntry(token, ""), status=status)
    return Outcome(OutcomeKind.ERROR, token, status=status, error=f"HTTP {status}")


async def probe(session: aiohttp.ClientSession, item: WorkItem) -> Outcome:
    try:
        async with session.head(item.url, allow_redirects=False) as resp:
            # drain so the connection goes back to the pool
            await resp.read()
            status = resp.status
            location = resp.headers.get(hdrs.LOCATION)
            request_url = resp.url
    except asyncio.TimeoutError:
        return Outcome(OutcomeKind.ERROR, item.token, error="timeout")
    except (aiohttp.ClientError, OSError) as e:
        return Outcome(OutcomeKind.ERROR, item.token, error=f"{type(e).__name__}: {e}")
    return classify_response(item.token, status, location, request_url)


# ---------------------------
# Pool
# ---------------------------

class ProbePool:
    def __init__(self, config: ResolverConfig, stats: Stats, store: ResultStore, skip: AbstractSet[str]):
        self.config = config
        self.stats = stats
        self.store = store
        self.skip = skip

        self._tasks: List[asyncio.Task] = []
        self._busy: Set[asyncio.Task] = set()
        self._stopping = asyncio.Event()

    @property
    def size(self) -> int:
        return len(self._tasks)

    def start(self, queue: "asyncio.Queue[WorkItem]", completions: "asyncio.Queue[Outcome]") -> None:
        if self._tasks:
            raise RuntimeError("pool already started")
        self._stopping.clear()
        self._tasks = [
            asyncio.create_task(self._worker_loop(queue, completions), name=f"probe-{i}")
            for i in range(self.config.workers)
        ]
        log.debug("Started %s probe workers", len(self._tasks))

    async def handle(self, session: aiohttp.ClientSession, item: WorkItem) -> Outcome:
        self.stats.incr("total")
        if item.token in self.skip:
            return Outcome(OutcomeKind.SKIPPED, item.token)

        self.stats.incr("requests")
        outcome = await probe(session, item)

        if outcome.kind is OutcomeKind.SUCCESS:
            self.stats.incr("request_success")
            self.store.record(outcome.entry)
        elif outcome.kind is OutcomeKind.NOT_FOUND:
            self.stats.incr("request_not_found")
            self.store.record(outcome.entry)
        else:
            self.stats.incr("request_errors")
            log.debug("probe error: %s %s", item.url, outcome.error)
        return outcome

    async def _worker_loop(self, queue: "asyncio.Queue[WorkItem]", completions: "asyncio.Queue[Outcome]") -> None:
        resolver = CachingResolver(self.config.dns_ttl_s, self.config.dns_negative_ttl_s)
        session = build_session(self.config, resolver)
        me = asyncio.current_task()
        try:
            while not self._stopping.is_set():
                item = await queue.get()
                self._busy.add(me)
                try:
                    try:
                        outcome = await self.handle(session, item)
                    except Exception as e:
                        log.exception("unexpected failure handling %s", item.url)
                        self.stats.incr("request_errors")
                        outcome = Outcome(OutcomeKind.ERROR, item.token, error=f"{type(e).__name__}: {e}")
                    await completions.put(outcome)
                finally:
                    self._busy.discard(me)
                    queue.task_done()
        finally:
            await session.close()
            await resolver.close()

    async def shutdown(self, grace_s: Optional[float] = None) -> None:
        """
        Stop all workers. Idle workers are cancelled at once; a worker in the
        middle of a probe gets up to grace_s (default: the probe timeout) to
        finish it before being cancelled.
        """
        if not self._tasks:
            return
        self._stopping.set()
        grace = self.config.timeout_s if grace_s is None else grace_s

        tasks, self._tasks = self._tasks, []
        for t in tasks:
            if t not in self._busy:
                t.cancel()

        _, pending = await asyncio.wait(tasks, timeout=grace)
        if pending:
            log.warning("Abandoning %s in-flight probes after %.1fs", len(pending), grace)
            for t in pending:
                t.cancel()

        results = await asyncio.gather(*tasks, return_exceptions=True)
        for r in results:
            if isinstance(r, Exception):
                log.error("probe worker failed: %s: %s", type(r).__name__, r)
        self._busy.clear()
