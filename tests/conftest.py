"""Shared fixtures: an in-process fake of the fleet profile API.

The fake records every request it receives and answers with whatever the
test installs as ``responder`` (200 + ``{}`` by default).
"""
import sys
from dataclasses import dataclass
from typing import Awaitable, Callable

import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])


@dataclass
class RecordedRequest:
    method: str
    path: str
    headers: dict[str, str]
    body: bytes


async def ok_json(request: web.Request) -> web.Response:
    return web.json_response({})


class FakeFleetAPI:
    """Records requests and delegates the reply to ``responder``."""

    def __init__(self):
        self.requests: list[RecordedRequest] = []
        self.responder: Callable[[web.Request], Awaitable[web.Response]] = ok_json
        self.url = ""

    @property
    def paths(self) -> list[str]:
        return [request.path for request in self.requests]

    async def handle(self, request: web.Request) -> web.Response:
        body = await request.read()
        self.requests.append(
            RecordedRequest(
                method=request.method,
                path=request.path,
                headers=dict(request.headers),
                body=body,
            )
        )
        return await self.responder(request)


@pytest_asyncio.fixture
async def fleet_api():
    """Start a fake profile API on a local port."""
    api = FakeFleetAPI()
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", api.handle)

    server = TestServer(app)
    await server.start_server()
    api.url = f"http://{server.host}:{server.port}"

    yield api

    await server.close()
