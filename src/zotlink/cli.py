#!/usr/bin/env python3
"""Command-line access to Better BibTeX.

Usage:
    # Is Better BibTeX reachable?
    zotlink ping

    # Search the library
    zotlink search "quantum interference"

    # Formatted bibliography (Markdown, or --html), quick-copy style by default
    zotlink bib xu2022 chen2023 --style apa

    # Citekeys of every library (cached for freshness_seconds)
    zotlink citekeys --force

Structured results are printed as JSON.  Exit status is 1 when the
operation produced nothing.
"""

from __future__ import annotations

import argparse
import json
import logging
import logging.handlers
import sys
from dataclasses import asdict, is_dataclass, replace
from datetime import date
from pathlib import Path
from typing import Any

import anyio

from zotlink.cache import ResponseCache
from zotlink.client import BBTClient
from zotlink.config import create_default, load_config
from zotlink.errors import ConfigError
from zotlink.models import CiteKey, Result
from zotlink.paths import home_dir
from zotlink.ports import parse_database
from zotlink.presenter import LogPresenter

logger = logging.getLogger("zotlink")

LOG_FORMAT = "%(asctime)s [%(process)d] %(levelname)s %(name)s: %(message)s"
LOG_FILE_NAME = "zotlink.log"


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Stderr handler (WARNING+, DEBUG with -v), plus an optional rotating file.

    An unwritable log file is reported on stderr and skipped.
    """
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        logger.removeHandler(h)

    stderr = logging.StreamHandler(sys.stderr)
    stderr.setLevel(logging.DEBUG if verbose else logging.WARNING)
    stderr.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
    logger.addHandler(stderr)

    if log_file is None:
        return
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=2_000_000,
            backupCount=3,
            encoding="utf-8",
        )
    except OSError as e:
        logger.warning("Cannot write log file %s: %s", log_file, e)
        return
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(fh)


def _jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, date):
        return value.isoformat()
    raise TypeError(f"Cannot serialize {type(value).__name__}")


def _emit(result: Result, raw_text: bool = False) -> int:
    if not result.ok:
        if result.error:
            print(result.error, file=sys.stderr)
        else:
            print("Nothing found.", file=sys.stderr)
        return 1
    if raw_text:
        print(result.value)
    else:
        print(json.dumps(result.value, default=_jsonable, indent=2, ensure_ascii=False))
    return 0


def _keys(args: argparse.Namespace) -> list[CiteKey]:
    return [CiteKey(key=k, library=args.library) for k in args.keys]


async def _dispatch(bbt: BBTClient, args: argparse.Namespace) -> int:
    cmd = args.command
    if cmd == "ping":
        running = await bbt.is_running()
        print("ready" if running else "not running")
        return 0 if running else 1
    if cmd == "search":
        return _emit(await bbt.search(args.term))
    if cmd == "notes":
        return _emit(await bbt.get_notes(_keys(args)))
    if cmd == "bib":
        fmt = "html" if args.html else "markdown"
        return _emit(await bbt.get_bibliography(_keys(args), args.style, fmt), raw_text=True)
    if cmd == "collections":
        return _emit(await bbt.get_collections(CiteKey(args.key, args.library)))
    if cmd == "attachments":
        return _emit(await bbt.get_attachments(CiteKey(args.key, args.library)))
    if cmd == "date":
        result = await bbt.get_issue_date(CiteKey(args.key, args.library), not args.calendar)
        return _emit(result, raw_text=not args.calendar)
    if cmd == "item":
        return _emit(await bbt.get_item_json(_keys(args), args.library))
    if cmd == "library":
        return _emit(await bbt.get_lib_for_citekey(args.key))
    if cmd == "groups":
        return _emit(await bbt.list_groups())
    if cmd == "citekeys":
        snapshot = await bbt.get_all_citekeys(force=args.force)
        rows = [k.to_dict() for k in snapshot.citekeys]
        print(json.dumps({"citekeys": rows, "fromCache": snapshot.from_cache}, indent=2, ensure_ascii=False))
        return 0
    raise AssertionError(f"unhandled command {cmd}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="zotlink", description="Query Zotero through Better BibTeX")
    parser.add_argument("--config", type=Path, help="Path to config.yaml (default ~/.zotlink/config.yaml)")
    parser.add_argument("--database", help="Zotero or Juris-M")
    parser.add_argument("--port", type=int, help="Better BibTeX port (overrides database default)")
    parser.add_argument("--library", type=int, default=1, help="Library id for citekeys (default 1)")
    parser.add_argument("--log-file", type=Path, help="Log file (default ~/.zotlink/zotlink.log)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("ping", help="Check that Better BibTeX is running")
    sub.add_parser("groups", help="List libraries")
    sub.add_parser("init-config", help="Write a starter config.yaml")

    p = sub.add_parser("search", help="Search items")
    p.add_argument("term")

    for name, help_text in (("notes", "Item notes"), ("item", "Full item JSON")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("keys", nargs="+", metavar="KEY")

    p = sub.add_parser("bib", help="Formatted bibliography")
    p.add_argument("keys", nargs="+", metavar="KEY")
    p.add_argument("--style", help="CSL style id (default: Zotero quick copy)")
    p.add_argument("--html", action="store_true", help="Print HTML instead of Markdown")

    for name, help_text in (
        ("collections", "Collections containing an item"),
        ("attachments", "Attachments of an item"),
        ("library", "Library id holding a citekey"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("key")

    p = sub.add_parser("date", help="Issue date of an item")
    p.add_argument("key")
    p.add_argument("--calendar", action="store_true", help="Print as a full YYYY-MM-DD date")

    p = sub.add_parser("citekeys", help="Citekeys of every library")
    p.add_argument("--force", action="store_true", help="Ignore the cached snapshot")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.log_file or home_dir() / LOG_FILE_NAME)

    if args.command == "init-config":
        print(create_default(args.config))
        return 0

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        print(e, file=sys.stderr)
        return 2

    target = cfg.target
    if args.database:
        target = replace(target, database=parse_database(args.database) or args.database)
    if args.port is not None:
        target = replace(target, port=args.port)

    async def run() -> int:
        async with BBTClient(
            target,
            cache=ResponseCache(cfg.freshness_seconds),
            presenter=LogPresenter(),
            timeout=cfg.timeout,
        ) as bbt:
            return await _dispatch(bbt, args)

    return anyio.run(run)


if __name__ == "__main__":
    sys.exit(main())
