#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Bruteforce a range of short-link identifiers.

  python shortlink_scan.py 0 1000000
  python shortlink_scan.py 1000000 2000000 --workers 500 --base-url https://git.io

- Identifiers in [start, end) are encoded to base-62 tokens (0-9A-Za-z,
  least-significant first) and probed with HEAD <base-url>/<token>
- 302 -> "<token>,<target>" and 404 -> "<token>," are appended to data.txt
- Tokens already in data.txt are skipped, so an interrupted run can simply be
  started again with the same range
- Stats (RPS, totals, per-run counters) are logged every --report-every seconds

Settings can also come from .env / environment (SHORTLINK_BASE_URL,
SHORTLINK_WORKERS, SHORTLINK_DATA_PATH, ...). Flags win.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from shortlink_canary import CanaryError, run_canary
from shortlink_config import ResolverConfig
from shortlink_resolver import run_range
from shortlink_stats import Stats
from shortlink_store import StoreLoadError


def configure_logging(v: int) -> logging.Logger:
    level = logging.INFO
    if v >= 2:
        level = logging.DEBUG
    elif v == 0:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger("shortlink_scan")


def format_stats(stats: Stats) -> List[str]:
    s = stats.snapshot()
    return [
        f"stats: RPS: {s.rate:.2f}",
        f"stats: {s.total} total, {s.total_redirect} total redirects, {s.total_not_found} total 404s",
        f"stats: {s.requests} requests, {s.request_errors} error, {s.request_not_found} 404, {s.request_success} success",
    ]


async def report_loop(stats: Stats, interval_s: float, log: logging.Logger) -> None:
    while True:
        await asyncio.sleep(interval_s)
        for line in format_stats(stats):
            log.info("%s", line)


async def main_async(cfg: ResolverConfig, start: int, end: int, report_every: float, log: logging.Logger) -> int:
    stats = Stats()
    reporter = asyncio.create_task(report_loop(stats, report_every, log)) if report_every > 0 else None
    try:
        report = await run_range(cfg, start, end, stats=stats)
    finally:
        if reporter is not None:
            reporter.cancel()
            await asyncio.gather(reporter, return_exceptions=True)

    for line in format_stats(stats):
        log.info("%s", line)
    log.info("Done. %s", report.to_dict())
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser("shortlink_scan.py", description="Bruteforce-resolve a range of short-link identifiers.")
    p.add_argument("start", type=int, help="First identifier (inclusive)")
    p.add_argument("end", type=int, help="Last identifier (exclusive)")

    p.add_argument("--base-url", default=None, help="Shortener base URL (default: https://git.io)")
    p.add_argument("--data", dest="data_path", default=None, help="Result log (default: data.txt)")
    p.add_argument("--workers", type=int, default=None, help="Concurrent probe workers (default: 1500)")
    p.add_argument("--queue-size", type=int, default=None, help="Work/completion queue bound (default: 8192)")
    p.add_argument("--timeout-s", type=float, default=None, help="Per-probe timeout (default: 20)")
    p.add_argument("--flush-threshold", type=int, default=None, help="Pending entries before an append (default: 10000)")
    p.add_argument("--dotenv", default=None, help="Path to .env file (default: search from cwd)")
    p.add_argument("--skip-canary", action="store_true", help="Skip the canary check (not recommended)")
    p.add_argument("--report-every", type=float, default=5.0, help="Stats interval in seconds, 0 = off (default: 5)")
    p.add_argument("-v", "--verbose", action="count", default=1)
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    log = configure_logging(args.verbose)

    try:
        cfg = ResolverConfig.from_env(args.dotenv).replace(
            base_url=args.base_url,
            data_path=args.data_path,
            workers=args.workers,
            queue_size=args.queue_size,
            timeout_s=args.timeout_s,
            flush_threshold=args.flush_threshold,
        ).validate()
    except ValueError as e:
        log.error("Invalid configuration: %s", e)
        return 2

    if args.start < 0 or args.end < args.start:
        log.error("Invalid range %s-%s", args.start, args.end)
        return 2
    log.info("Using range %s-%s", args.start, args.end)

    if not args.skip_canary:
        try:
            run_canary(cfg.base_url, timeout_s=cfg.timeout_s, user_agent=cfg.user_agent)
        except CanaryError as e:
            log.error("%s", e)
            return 3

    try:
        return asyncio.run(main_async(cfg, args.start, args.end, args.report_every, log))
    except StoreLoadError as e:
        log.error("Cannot load result log, refusing to run: %s", e)
        return 2
    except ValueError as e:
        log.error("%s", e)
        return 2


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        raise SystemExit(130)
