#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Runtime configuration.

Values come from (lowest to highest priority): defaults, environment /
.env (SHORTLINK_* variables, loaded with python-dotenv), CLI flags.
"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

DEFAULT_BASE_URL = "https://git.io"
DEFAULT_DATA_PATH = "data.txt"

ENV_PREFIX = "SHORTLINK_"


@dataclasses.dataclass
class ResolverConfig:
    base_url: str = DEFAULT_BASE_URL
    data_path: Path = Path(DEFAULT_DATA_PATH)
    workers: int = 1500
    queue_size: int = 8192
    timeout_s: float = 20.0
    dns_ttl_s: float = 24 * 3600.0
    dns_negative_ttl_s: float = 5.0
    idle_per_host: int = 1024
    flush_threshold: int = 10_000
    user_agent: str = "shortlink-bruteforcer/1.0"

    def validate(self) -> "ResolverConfig":
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be http(s): {self.base_url}")
        if self.workers < 1:
            raise ValueError("workers must be >= 1")
        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        if self.timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")
        if self.dns_ttl_s < 0 or self.dns_negative_ttl_s < 0:
            raise ValueError("DNS TTLs must be >= 0")
        if self.idle_per_host < 0:
            raise ValueError("idle_per_host must be >= 0")
        if self.flush_threshold < 1:
            raise ValueError("flush_threshold must be >= 1")
        return self

    def replace(self, **overrides: Any) -> "ResolverConfig":
        """Copy with overrides; None values are ignored (unset CLI flags)."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if "data_path" in changes:
            changes["data_path"] = Path(changes["data_path"])
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> "ResolverConfig":
        if environ is None:
            load_dotenv(dotenv_path=dotenv_path, override=False)
            environ = dict(os.environ)

        cfg = cls()
        overrides: Dict[str, Any] = {}
        for field in dataclasses.fields(cls):
            raw = environ.get(ENV_PREFIX + field.name.upper())
            if raw is None or not raw.strip():
                continue
            default = getattr(cfg, field.name)
            try:
                if isinstance(default, int):
                    overrides[field.name] = int(raw)
                elif isinstance(default, float):
                    overrides[field.name] = float(raw)
                else:
                    overrides[field.name] = raw.strip()
            except ValueError as e:
                raise ValueError(f"invalid {ENV_PREFIX}{field.name.upper()}={raw!r}: {e}") from e
        return cfg.replace(**overrides)
