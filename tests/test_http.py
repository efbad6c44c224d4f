"""Tests for zotlink.http — request shapes and envelope parsing.

All tests use httpx.MockTransport to avoid real HTTP.
"""

import json

import anyio
import httpx
import pytest

from zotlink.errors import ProtocolError, TransportError
from zotlink.http import (
    DEFAULT_HEADERS,
    export_url,
    get_export,
    parse_envelope,
    post_rpc,
    probe,
    rpc_url,
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestUrls:
    def test_rpc_url(self):
        assert rpc_url(23119) == "http://127.0.0.1:23119/better-bibtex/json-rpc"

    def test_export_url(self):
        assert (
            export_url(24119, 3, "Lab", "abc")
            == "http://127.0.0.1:24119/better-bibtex/export/library?/3/Lab.abc"
        )


class TestPostRpc:
    def test_body_and_headers(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            seen["ctype"] = request.headers["content-type"]
            return httpx.Response(200, text='{"result": 1}')

        text = anyio.run(post_rpc, _client(handler), 23119, "item.search", ["q"])
        assert text == '{"result": 1}'
        assert seen["method"] == "POST"
        assert seen["url"] == rpc_url(23119)
        assert seen["body"] == {"jsonrpc": "2.0", "method": "item.search", "params": ["q"]}
        assert seen["ctype"] == DEFAULT_HEADERS["Content-Type"]

    def test_params_omitted_when_none(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, text="{}")

        anyio.run(post_rpc, _client(handler), 23119, "user.groups")
        assert bodies == [{"jsonrpc": "2.0", "method": "user.groups"}]

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportError) as exc_info:
            anyio.run(post_rpc, _client(handler), 23119, "item.notes", [])
        assert exc_info.value.status_code == 0
        assert "Zotero is running" in str(exc_info.value)

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(TransportError):
            anyio.run(post_rpc, _client(handler), 23119, "item.notes", [])

    def test_non_2xx(self):
        with pytest.raises(TransportError) as exc_info:
            anyio.run(post_rpc, _client(lambda r: httpx.Response(503, text="busy")), 23119, "x", [])
        assert exc_info.value.status_code == 503


class TestGetExport:
    def test_get_request(self):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            return httpx.Response(200, text="[]")

        assert anyio.run(get_export, _client(handler), 23119, 1, "My Library", "tid") == "[]"
        assert seen == [("GET", "/better-bibtex/export/library")]

    def test_404(self):
        with pytest.raises(TransportError) as exc_info:
            anyio.run(get_export, _client(lambda r: httpx.Response(404)), 23119, 1, "x", "tid")
        assert "outdated" in str(exc_info.value)


class TestProbe:
    def test_ready(self):
        assert anyio.run(probe, _client(lambda r: httpx.Response(200, text="ready")), 23119) is True

    def test_not_ready(self):
        assert anyio.run(probe, _client(lambda r: httpx.Response(200, text="starting")), 23119) is False

    def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert anyio.run(probe, _client(handler), 23119) is False


class TestParseEnvelope:
    def test_result(self):
        assert parse_envelope('{"jsonrpc": "2.0", "result": [1, 2]}', "m") == [1, 2]

    def test_null_result(self):
        assert parse_envelope('{"jsonrpc": "2.0", "result": null}', "m") is None

    def test_error_member(self):
        with pytest.raises(ProtocolError, match="bad params"):
            parse_envelope('{"error": {"code": -32602, "message": "bad params"}}', "item.notes")

    def test_invalid_json(self):
        with pytest.raises(ProtocolError, match="invalid JSON"):
            parse_envelope("<html>", "m")

    def test_non_object(self):
        with pytest.raises(ProtocolError, match="list"):
            parse_envelope("[1]", "m")
