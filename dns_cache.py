#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Caching DNS resolver for aiohttp connectors.

aiohttp's own ttl_dns_cache has a single TTL and never caches failures, so
a long run against one host either re-resolves constantly or hammers DNS
after an outage. This resolver keeps successful answers for `ttl_s`
(default 24h) and failures for `negative_ttl_s` (default 5s).
"""

from __future__ import annotations

import socket
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import aiohttp
from aiohttp.abc import AbstractResolver

DEFAULT_TTL_S = 24 * 3600.0
DEFAULT_NEGATIVE_TTL_S = 5.0

_Key = Tuple[str, int, int]


class CachingResolver(AbstractResolver):
    def __init__(
        self,
        ttl_s: float = DEFAULT_TTL_S,
        negative_ttl_s: float = DEFAULT_NEGATIVE_TTL_S,
        inner: Optional[AbstractResolver] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_s = ttl_s
        self.negative_ttl_s = negative_ttl_s
        self._inner = inner if inner is not None else aiohttp.ThreadedResolver()
        self._clock = clock
        self._hits: Dict[_Key, Tuple[float, List[Any]]] = {}
        self._misses: Dict[_Key, Tuple[float, str]] = {}

    async def resolve(self, host: str, port: int = 0, family: int = socket.AF_INET) -> List[Any]:
        key = (host, port, int(family))
        now = self._clock()

        hit = self._hits.get(key)
        if hit is not None:
            expires_at, records = hit
            if now < expires_at:
                return records
            del self._hits[key]

        miss = self._misses.get(key)
        if miss is not None:
            expires_at, reason = miss
            if now < expires_at:
                raise OSError(f"DNS lookup failed for {host} (cached): {reason}")
            del self._misses[key]

        try:
            records = await self._inner.resolve(host, port, family)
        except OSError as e:
            self._misses[key] = (self._clock() + self.negative_ttl_s, str(e))
            raise
        self._hits[key] = (self._clock() + self.ttl_s, records)
        return records

    async def close(self) -> None:
        self._hits.clear()
        self._misses.clear()
        await self._inner.close()
