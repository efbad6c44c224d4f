"""Better BibTeX client: named operations over the single-flight queue.

Every operation has the same envelope:

  1. take a turn on the :class:`~zotlink.call_queue.CallQueue`
  2. send one request
  3. release the turn (always, even on failure)
  4. parse and post-process the response

and every operation returns a :class:`~zotlink.models.Result`.  Failures
are logged, handed to the presenter as a notice, and come back as a
result with no value; nothing is raised to the caller.  A lookup that
simply finds nothing is a missing result with no error.

Usage::

    async with BBTClient(DatabaseWithPort("Zotero")) as bbt:
        bib = await bbt.get_bibliography([CiteKey("doe2020", 1)])
        if bib.ok:
            print(bib.value)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from contextlib import nullcontext
from datetime import date
from typing import Any

import httpx

from zotlink.cache import ResponseCache
from zotlink.call_queue import CallQueue, default_queue
from zotlink.dates import date_parts_to_date, date_parts_to_string, first_date_parts
from zotlink.errors import EmptyBibliography, ProtocolError, ZotLinkError
from zotlink.http import DEFAULT_TIMEOUT, get_export, parse_envelope, post_rpc, probe
from zotlink.markdown import html_to_markdown
from zotlink.models import (
    CiteKey,
    CiteKeyExport,
    CiteKeySnapshot,
    CollectionPath,
    Group,
    Result,
    citekey_from_any,
)
from zotlink.ports import DatabaseWithPort, port_for
from zotlink.presenter import LogPresenter, Presenter

logger = logging.getLogger(__name__)

# Better BibTeX translator ids.
ITEM_JSON_TRANSLATOR = "36a3b0b5-bad0-4a04-b79b-441c7cef77db"
CSL_JSON_TRANSLATOR = "f4b52ab0-f878-4556-85a0-c7aeedd09dfc"

# citeproc's error for an empty bibliography, as relayed by Better BibTeX.
_EMPTY_FRAGMENT = "element/document/fragment"

# Response-shape surprises are reported like protocol errors.
_RECOVERABLE = (ZotLinkError, KeyError, TypeError, ValueError, IndexError, AttributeError)


def _unwrap_export(result: Any) -> Any:
    """Decode an ``item.export`` result.

    Depending on the code path Better BibTeX answers either
    ``[status, contentType, payload]`` or the bare payload string.
    """
    payload = result[2] if isinstance(result, list) else result
    return json.loads(payload) if isinstance(payload, str) else payload


def _parse_groups(result: Any) -> list[Group]:
    return [Group(id=int(g["id"]), name=str(g["name"])) for g in result or []]


def _collection_path(collection: dict[str, Any]) -> CollectionPath:
    names = [collection["name"]]
    parent = collection.get("parentCollection")
    while parent:
        names.append(parent["name"])
        parent = parent.get("parentCollection")
    return CollectionPath(
        key=collection["key"],
        name=collection["name"],
        full_path="/".join(reversed(names)),
    )


LivenessCheck = Callable[[DatabaseWithPort], Awaitable[bool]]


class BBTClient:
    """Operations against one Better BibTeX endpoint."""

    def __init__(
        self,
        target: DatabaseWithPort | None = None,
        *,
        http: httpx.AsyncClient | None = None,
        queue: CallQueue | None = None,
        cache: ResponseCache | None = None,
        presenter: Presenter | None = None,
        to_markdown: Callable[[str], str] = html_to_markdown,
        liveness: LivenessCheck | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.target = target or DatabaseWithPort()
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(timeout=timeout)
        self.queue = queue or default_queue()
        self.cache = cache or ResponseCache()
        self.presenter = presenter or LogPresenter()
        self.to_markdown = to_markdown
        self._liveness = liveness

    async def __aenter__(self) -> BBTClient:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    # ------------------------------------------------------------------
    # Envelope
    # ------------------------------------------------------------------

    async def _rpc(self, method: str, params: list[Any] | None, busy: str | None = None) -> Any:
        """One queued JSON-RPC call.  Raises ZotLinkError; operations catch it."""
        port = port_for(self.target)
        with self.presenter.busy(busy) if busy else nullcontext():
            async with self.queue.turn():
                text = await post_rpc(self.http, port, method, params)
        return parse_envelope(text, method)

    def _fail(self, action: str, exc: BaseException, *, quiet: bool = False, message: str = "") -> Result:
        message = message or f"Error {action}: {exc}"
        logger.warning("%s", message)
        logger.debug("%s failed", action, exc_info=exc)
        if not quiet:
            self.presenter.notice(message)
        return Result.failed(message)

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------

    async def is_running(self) -> bool:
        """True when Better BibTeX answers on the configured port."""
        if self._liveness is not None:
            try:
                return bool(await self._liveness(self.target))
            except Exception:
                logger.warning("Liveness check failed; treating Better BibTeX as down", exc_info=True)
                return False
        try:
            port = port_for(self.target)
        except ZotLinkError as e:
            logger.warning("%s", e)
            return False
        async with self.queue.turn():
            return await probe(self.http, port)

    # ------------------------------------------------------------------
    # Item data
    # ------------------------------------------------------------------

    async def get_notes(self, citekeys: list[CiteKey]) -> Result[dict[str, Any]]:
        try:
            result = await self._rpc(
                "item.notes", [[k.key for k in citekeys]], busy="Fetching notes from Zotero..."
            )
        except _RECOVERABLE as e:
            return self._fail("retrieving notes", e)
        return Result.of(result)

    async def get_collections(self, citekey: CiteKey) -> Result[list[CollectionPath]]:
        try:
            result = await self._rpc(
                "item.collections",
                [[citekey.key], True],
                busy="Fetching collections from Zotero...",
            )
            paths = [_collection_path(c) for c in result[citekey.key]]
        except _RECOVERABLE as e:
            return self._fail("retrieving collections", e)
        return Result.of(paths)

    async def get_attachments(self, citekey: CiteKey) -> Result[list[dict[str, Any]]]:
        try:
            result = await self._rpc(
                "item.attachments",
                [citekey.key, citekey.library],
                busy="Fetching attachments from Zotero...",
            )
        except _RECOVERABLE as e:
            return self._fail("retrieving attachments", e)
        return Result.of(result)

    async def get_bibliography(
        self,
        citekeys: list[CiteKey],
        style: str | None = None,
        fmt: str | None = None,
        silent: bool = False,
    ) -> Result[str]:
        """Formatted bibliography for *citekeys*.

        Without *style* Better BibTeX uses Zotero's quick copy setting.
        ``fmt="html"`` returns citeproc HTML; anything else is converted
        to Markdown.  *silent* suppresses the busy indicator.
        """
        if not citekeys:
            return Result.missing()

        options: dict[str, Any] = {"contentType": "html"}
        if style:
            options["id"] = style
        else:
            options["quickCopy"] = True

        busy = None if silent else "Fetching bibliography from Zotero..."
        try:
            html = await self._rpc(
                "item.bibliography",
                [[k.key for k in citekeys], options, citekeys[0].library],
                busy=busy,
            )
        except _RECOVERABLE as e:
            if _EMPTY_FRAGMENT in str(e):
                return self._fail("retrieving bibliography", e, message=str(EmptyBibliography()))
            return self._fail("retrieving formatted bibliography", e)

        if fmt == "html":
            return Result.of(html)
        try:
            return Result.of(self.to_markdown(html))
        except EmptyBibliography as e:
            return self._fail("converting bibliography", e, message=str(e))
        except _RECOVERABLE as e:
            return self._fail("converting formatted bibliography to markdown", e)

    async def get_bibliography_for(
        self,
        citekey: CiteKey,
        style: str | None = None,
        fmt: str | None = None,
        silent: bool = False,
    ) -> Result[str]:
        return await self.get_bibliography([citekey], style, fmt, silent)

    async def get_item_json(self, citekeys: list[CiteKey], library_id: int) -> Result[list[dict[str, Any]]]:
        """Full Zotero item records, as exported by Better BibTeX."""
        try:
            result = await self._rpc(
                "item.export",
                [[k.key for k in citekeys], ITEM_JSON_TRANSLATOR, library_id],
                busy="Fetching data from Zotero...",
            )
            items = _unwrap_export(result)["items"]
        except _RECOVERABLE as e:
            return self._fail("retrieving item data", e)
        return Result.of(items)

    async def get_item_json_from_relations(
        self, library_id: int, uris: list[str]
    ) -> Result[list[dict[str, Any]]]:
        """Resolve Zotero relation URIs to item records, preserving order.

        Each output position matches the input URI.  A URI that has no
        citekey comes back as ``{"uri": uri}``; one whose item could not
        be exported comes back as ``{"citekey": ..., "uri": uri}``.
        """
        order: list[str] = []
        uri_by_id: dict[str, str] = {}
        for uri in uris:
            item_id = uri.split("/")[-1]
            order.append(item_id)
            uri_by_id[item_id] = uri

        try:
            result = await self._rpc(
                "item.citationkey",
                [[f"{library_id}:{item_id}" for item_id in order]],
                busy="Fetching data from Zotero...",
            )
            resolved: dict[str, dict[str, Any]] = {}
            citekeys: list[CiteKey] = []
            for qualified, key in result.items():
                item_id = qualified.split(":")[-1]
                uri = uri_by_id.get(item_id, item_id)
                if key:
                    citekeys.append(CiteKey(key=key, library=library_id))
                    resolved[item_id] = {"citekey": key, "uri": uri}
                else:
                    resolved[item_id] = {"uri": uri}
        except _RECOVERABLE as e:
            return self._fail("retrieving item data", e)

        items: list[dict[str, Any]] = []
        if citekeys:
            fetched = await self.get_item_json(citekeys, library_id)
            items = fetched.value or []

        by_key: dict[str, dict[str, Any]] = {}
        for item in items:
            ck = citekey_from_any(item)
            if ck is not None:
                by_key.setdefault(ck.key, item)

        out = []
        for item_id in order:
            entry = resolved.get(item_id, {"uri": uri_by_id[item_id]})
            key = entry.get("citekey")
            out.append(by_key.get(key, entry) if key else entry)
        return Result.of(out)

    async def get_issue_date(self, citekey: CiteKey, as_string: bool = True) -> Result[str | date]:
        """Issue date of one item: ``"2020-03"`` or a :class:`datetime.date`.

        Only the first item with a usable ``issued`` date counts.
        """
        try:
            result = await self._rpc(
                "item.export",
                [[citekey.key], CSL_JSON_TRANSLATOR, citekey.library],
                busy="Fetching data from Zotero...",
            )
            parts = first_date_parts(_unwrap_export(result))
            if parts is None:
                return Result.missing()
            value = date_parts_to_string(parts) if as_string else date_parts_to_date(parts)
        except _RECOVERABLE as e:
            return self._fail("retrieving item data", e)
        return Result.of(value)

    async def search(self, term: str) -> Result[list[dict[str, Any]]]:
        try:
            result = await self._rpc("item.search", [term])
        except _RECOVERABLE as e:
            return self._fail("searching", e)
        return Result.of(result)

    # ------------------------------------------------------------------
    # Libraries
    # ------------------------------------------------------------------

    async def list_groups(self) -> Result[list[Group]]:
        try:
            result = await self._rpc("user.groups", [])
            if not isinstance(result, list):
                raise ProtocolError("user.groups", f"expected a list, got {type(result).__name__}")
            groups = _parse_groups(result)
        except _RECOVERABLE as e:
            return self._fail("listing libraries", e, quiet=True)
        return Result.of(groups)

    async def export_citekeys(self, group_id: int | str, group_name: str) -> Result[list[CiteKeyExport]]:
        """Citekey index of one library.  Rows without a citekey or title are dropped."""
        method = f"export/{group_id}"
        try:
            port = port_for(self.target)
            async with self.queue.turn():
                text = await get_export(self.http, port, group_id, group_name, CSL_JSON_TRANSLATOR)
            entries = json.loads(text)
            if not isinstance(entries, list):
                raise ProtocolError(method, f"expected a list, got {type(entries).__name__}")
            rows = [
                CiteKeyExport(library_id=int(group_id), citekey=e["citation-key"], title=e["title"])
                for e in entries
                if isinstance(e, dict) and e.get("citation-key") and e.get("title")
            ]
        except _RECOVERABLE as e:
            return self._fail(f"exporting citekeys of '{group_name}'", e, quiet=True)
        return Result.of(rows)

    async def get_lib_for_citekey(self, citekey: str) -> Result[int]:
        """Library id holding *citekey*, cached per citekey once found."""
        cached = self.cache.library_for(citekey)
        if cached is not None:
            return Result.of(cached)

        found = await self.search(citekey)
        if not found.ok:
            return Result(error=found.error)
        match = next(
            (r for r in found.value if isinstance(r, dict) and r.get("citekey") == citekey), None
        )
        if match is None:
            logger.debug("No search match for citekey '%s'", citekey)
            return Result.missing()

        if self.cache.groups is None:
            try:
                groups = _parse_groups(await self._rpc("user.groups", None))
            except _RECOVERABLE as e:
                return self._fail("retrieving library id", e)
            if groups:
                self.cache.set_groups(groups)

        library_id = self.cache.group_id_for(match.get("library"))
        if library_id is None:
            logger.debug("Library '%s' of '%s' not in groups", match.get("library"), citekey)
            return Result.missing()
        self.cache.remember_library(citekey, library_id)
        return Result.of(library_id)

    async def get_all_citekeys(self, force: bool = False) -> CiteKeySnapshot:
        """Citekeys of every library, refreshed at most once per freshness window.

        Never fails: when Better BibTeX is down or the group list cannot be
        read, the previous snapshot is returned with ``from_cache=True``.
        A library whose export fails is left out of the new snapshot.
        """
        if not force and self.cache.citekeys_fresh():
            return CiteKeySnapshot(self.cache.citekeys, from_cache=True)

        if not await self.is_running():
            logger.info("Better BibTeX not reachable; serving cached citekeys")
            return CiteKeySnapshot(self.cache.citekeys, from_cache=True)

        groups = await self.list_groups()
        if not groups.ok:
            return CiteKeySnapshot(self.cache.citekeys, from_cache=True)

        rows: list[CiteKeyExport] = []
        for group in groups.value:
            exported = await self.export_citekeys(group.id, group.name)
            if exported.ok:
                rows.extend(exported.value)

        return CiteKeySnapshot(self.cache.replace_citekeys(rows), from_cache=False)
