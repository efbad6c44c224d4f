"""HTTP transport for the Better BibTeX local service.

Two request shapes:

  POST /better-bibtex/json-rpc          {"jsonrpc": "2.0", "method": ..., "params": [...]}
  GET  /better-bibtex/export/library?/<groupId>/<groupName>.<translatorId>

The transport returns response text and never interprets the payload;
:func:`parse_envelope` is applied by the caller once its queue turn is over.
One attempt per call: Better BibTeX runs on localhost, so a failure means
Zotero is closed or misconfigured, and retrying will not help.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from zotlink import __version__
from zotlink.errors import ProtocolError, TransportError

logger = logging.getLogger(__name__)

HOST = "127.0.0.1"
DEFAULT_TIMEOUT = 10.0

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
    "User-Agent": f"zotlink/{__version__}",
    "Connection": "keep-alive",
}


def base_url(port: int) -> str:
    return f"http://{HOST}:{port}/better-bibtex"


def rpc_url(port: int) -> str:
    return f"{base_url(port)}/json-rpc"


def export_url(port: int, group_id: int | str, group_name: str, translator: str) -> str:
    # The '?' is part of Better BibTeX's path syntax, not a query string.
    return f"{base_url(port)}/export/library?/{group_id}/{group_name}.{translator}"


def probe_url(port: int) -> str:
    return f"{base_url(port)}/cayw?probe=true"


def _check(resp: httpx.Response, method: str) -> str:
    if not resp.is_success:
        raise TransportError(method, resp.status_code, resp.text[:200])
    return resp.text


async def post_rpc(
    client: httpx.AsyncClient,
    port: int,
    method: str,
    params: list[Any] | None = None,
) -> str:
    """Send one JSON-RPC call and return the raw response body.

    ``params`` is omitted from the request body when None.

    Raises:
        TransportError: Connection failure, timeout, or non-2xx status.
    """
    body: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
    if params is not None:
        body["params"] = params

    url = rpc_url(port)
    logger.debug("RPC %s -> %s", method, url)
    try:
        resp = await client.post(url, content=json.dumps(body), headers=DEFAULT_HEADERS)
    except httpx.HTTPError as e:
        raise TransportError(method, 0, str(e)) from e
    return _check(resp, method)


async def get_export(
    client: httpx.AsyncClient,
    port: int,
    group_id: int | str,
    group_name: str,
    translator: str,
) -> str:
    """Fetch a whole-library export as raw text.

    Raises:
        TransportError: Connection failure, timeout, or non-2xx status.
    """
    url = export_url(port, group_id, group_name, translator)
    method = f"export/{group_id}"
    logger.debug("GET %s", url)
    try:
        resp = await client.get(url, headers=DEFAULT_HEADERS)
    except httpx.HTTPError as e:
        raise TransportError(method, 0, str(e)) from e
    return _check(resp, method)


async def probe(client: httpx.AsyncClient, port: int) -> bool:
    """True when Better BibTeX answers its readiness probe.  Never raises."""
    try:
        resp = await client.get(probe_url(port), headers=DEFAULT_HEADERS)
    except httpx.HTTPError as e:
        logger.debug("Probe on port %d failed: %s", port, e)
        return False
    return resp.is_success and resp.text.strip() == "ready"


def parse_envelope(text: str, method: str) -> Any:
    """Return the ``result`` member of a JSON-RPC response body.

    Raises:
        ProtocolError: Invalid JSON, a non-object body, or an ``error`` member.
    """
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProtocolError(method, f"invalid JSON response ({e})") from e

    if not isinstance(parsed, dict):
        raise ProtocolError(method, f"expected a JSON-RPC object, got {type(parsed).__name__}")

    error = parsed.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise ProtocolError(method, message or "unknown error")

    return parsed.get("result")
