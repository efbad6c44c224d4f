"""Shared test fixtures for zotlink.

``FakeBBT`` stands in for the Better BibTeX HTTP endpoint through
``httpx.MockTransport``; no test talks to a real Zotero.
"""

import json
from typing import Any
from urllib.parse import unquote

import anyio
import httpx
import pytest

from zotlink.cache import ResponseCache
from zotlink.call_queue import CallQueue
from zotlink.client import BBTClient
from zotlink.ports import DatabaseWithPort
from zotlink.presenter import SilentPresenter


class FakeBBT:
    """Scriptable Better BibTeX.

    results:  method -> result value, or a callable taking params
    errors:   method -> JSON-RPC error message
    raw:      method -> raw response body (bypasses the envelope)
    status:   method -> HTTP status code
    exports:  group id -> list of export rows, or an HTTP status code
    """

    def __init__(self) -> None:
        self.results: dict[str, Any] = {}
        self.errors: dict[str, str] = {}
        self.raw: dict[str, str] = {}
        self.status: dict[str, int] = {}
        self.exports: dict[str, Any] = {}
        self.calls: list[tuple[str, Any]] = []
        self.ready = True
        self.down = False
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0

    def methods(self) -> list[str]:
        return [m for m, _ in self.calls]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if self.down:
            raise httpx.ConnectError("Connection refused", request=request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await anyio.sleep(self.delay)
            return self._respond(request)
        finally:
            self.in_flight -= 1

    def _respond(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/cayw"):
            self.calls.append(("probe", None))
            return httpx.Response(200, text="ready" if self.ready else "")

        if path.endswith("/export/library"):
            query = unquote(request.url.query.decode())
            group_id = query.split("/")[1]
            self.calls.append(("export", query))
            rows = self.exports.get(group_id, [])
            if isinstance(rows, int):
                return httpx.Response(rows, text="export failed")
            return httpx.Response(200, text=json.dumps(rows))

        body = json.loads(request.content)
        method = body["method"]
        self.calls.append((method, body.get("params", "<absent>")))

        if method in self.status:
            return httpx.Response(self.status[method], text="boom")
        if method in self.raw:
            return httpx.Response(200, text=self.raw[method])
        if method in self.errors:
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "error": {"code": -32000, "message": self.errors[method]}}
            )
        if method not in self.results:
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "error": {"code": -32601, "message": f"{method} not found"}}
            )
        result = self.results[method]
        if callable(result):
            result = result(body.get("params"))
        return httpx.Response(200, json={"jsonrpc": "2.0", "result": result})


@pytest.fixture
def fake() -> FakeBBT:
    return FakeBBT()


@pytest.fixture
def presenter() -> SilentPresenter:
    return SilentPresenter()


@pytest.fixture
def client(fake: FakeBBT, presenter: SilentPresenter) -> BBTClient:
    """A BBTClient wired to ``fake`` with its own queue and cache."""
    return BBTClient(
        DatabaseWithPort("Zotero"),
        http=httpx.AsyncClient(transport=httpx.MockTransport(fake.handler)),
        queue=CallQueue(),
        cache=ResponseCache(),
        presenter=presenter,
    )
