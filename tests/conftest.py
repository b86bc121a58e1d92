"""Pytest configuration and fixtures."""

import asyncio
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from shortlink_config import ResolverConfig
from shortlink_stats import Stats
from shortlink_store import ResultStore


class StubShortener:
    """Local stand-in for the redirect service: token -> (status, Location)."""

    def __init__(self):
        self.routes: Dict[str, Tuple[int, Optional[str]]] = {}
        self.delays: Dict[str, float] = {}
        self.hits: List[str] = []
        self.methods: List[str] = []
        self.server: Optional[TestServer] = None

    @property
    def base_url(self) -> str:
        assert self.server is not None
        return f"http://{self.server.host}:{self.server.port}"

    async def handle(self, request: web.Request) -> web.Response:
        token = request.match_info["token"]
        self.hits.append(token)
        self.methods.append(request.method)
        delay = self.delays.get(token)
        if delay:
            await asyncio.sleep(delay)
        status, location = self.routes.get(token, (404, None))
        headers = {"Location": location} if location is not None else {}
        return web.Response(status=status, headers=headers)


@pytest.fixture
async def stub():
    shortener = StubShortener()
    app = web.Application()
    app.router.add_route("*", "/{token:.*}", shortener.handle)
    server = TestServer(app)
    await server.start_server()
    shortener.server = server
    yield shortener
    await server.close()


@pytest.fixture
def data_path(tmp_path) -> Path:
    return tmp_path / "data.txt"


@pytest.fixture
def stats() -> Stats:
    return Stats()


@pytest.fixture
def store(data_path, stats) -> ResultStore:
    return ResultStore(data_path, stats)


@pytest.fixture
def make_config(data_path):
    def _make(base_url: str = "http://127.0.0.1:1", **overrides) -> ResolverConfig:
        defaults = dict(base_url=base_url, data_path=data_path, workers=4, queue_size=16, timeout_s=5.0)
        defaults.update(overrides)
        return ResolverConfig(**defaults).validate()

    return _make
