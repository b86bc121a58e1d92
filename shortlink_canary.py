#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Canary check before a long run.

Sends one HEAD (no redirects) for a token that cannot be produced by the
codec. A working shortener answers 404 (or 302 for a catch-all); anything
else (403 from a WAF, 5xx, TLS trouble) means the run would only count
errors, so we stop before starting 1500 workers.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests
from requests.adapters import HTTPAdapter

from shortlink_codec import build_probe_url

CANARY_TOKEN = "-canary-"
ACCEPTED_STATUSES = (302, 404)

log = logging.getLogger(__name__)


class CanaryError(RuntimeError):
    pass


def build_requests_session(user_agent: str) -> requests.Session:
    session = requests.Session()
    # single attempt, same as the probes
    adapter = HTTPAdapter(max_retries=0, pool_connections=1, pool_maxsize=1)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers["User-Agent"] = user_agent
    return session


def run_canary(
    base_url: str,
    timeout_s: float = 20.0,
    user_agent: str = "shortlink-bruteforcer/1.0",
    session: Optional[requests.Session] = None,
) -> int:
    url = build_probe_url(base_url, CANARY_TOKEN)
    log.info("Running canary check: HEAD %s", url)
    own_session = session is None
    s = session or build_requests_session(user_agent)
    try:
        resp = s.head(url, allow_redirects=False, timeout=timeout_s)
    except requests.RequestException as e:
        raise CanaryError(f"Canary failed: {type(e).__name__}: {e}") from e
    finally:
        if own_session:
            s.close()

    if resp.status_code not in ACCEPTED_STATUSES:
        raise CanaryError(
            f"Canary failed: {url} answered HTTP {resp.status_code}, expected one of {ACCEPTED_STATUSES}. "
            f"Stopping to avoid a run that only records errors."
        )
    log.info("Canary OK (HTTP %s).", resp.status_code)
    return resp.status_code
