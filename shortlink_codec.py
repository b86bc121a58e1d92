#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Identifier -> short-link token codec.

Tokens are base-62 over 0-9A-Za-z, but emitted least-significant symbol
first and never reversed:
  1   -> "1"
  62  -> "01"
  63  -> "11"
Historical data.txt logs are keyed by this exact ordering, so it must not be
"fixed" into positional base-62. encode_id(0) is the empty string.
"""

from __future__ import annotations

from typing import Iterator, Tuple

ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
BASE = len(ALPHABET)  # 62

MAX_ID = 2 ** 64  # exclusive


def _check_id(ident: int) -> None:
    if ident < 0 or ident >= MAX_ID:
        raise ValueError(f"identifier out of uint64 range: {ident}")


def encode_id(ident: int) -> str:
    _check_id(ident)
    out = []
    x = ident
    while x > 0:
        x, rem = divmod(x, BASE)
        out.append(ALPHABET[rem])
    return "".join(out)


def build_probe_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/{token}"


def iter_work(start: int, end: int) -> Iterator[Tuple[int, str]]:
    """(identifier, token) for every identifier in [start, end), in order. Bounds are checked up front."""
    if start < 0 or end > MAX_ID:
        raise ValueError(f"range out of uint64 bounds: [{start}, {end})")
    if start > end:
        raise ValueError(f"invalid range: start={start} > end={end}")
    return ((ident, encode_id(ident)) for ident in range(start, end))
