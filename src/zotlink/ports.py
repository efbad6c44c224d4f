"""Port resolution for the Better BibTeX service.

Zotero and Juris-M each listen on a fixed local port unless the user
configured another one.  An explicit port always wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from zotlink.errors import ConfigError, UnknownDatabase


class Database(str, Enum):
    ZOTERO = "Zotero"
    JURIS_M = "Juris-M"


DEFAULT_PORTS: dict[Database, int] = {
    Database.ZOTERO: 23119,
    Database.JURIS_M: 24119,
}

_ALIASES: dict[str, Database] = {
    "zotero": Database.ZOTERO,
    "juris-m": Database.JURIS_M,
    "jurism": Database.JURIS_M,
    "juris_m": Database.JURIS_M,
}


@dataclass(frozen=True)
class DatabaseWithPort:
    """Which database to talk to, and an optional port override."""

    database: Database | str = Database.ZOTERO
    port: int | None = None


def parse_database(name: Database | str) -> Database | None:
    """Map a database name to a known :class:`Database`, or None."""
    if isinstance(name, Database):
        return name
    return _ALIASES.get(str(name).strip().lower())


def resolve_port(database: Database | str, port: int | None = None) -> int:
    """Return the port for *database*, preferring an explicit *port*.

    Raises:
        UnknownDatabase: *database* has no default port and *port* is None.
        ConfigError: *port* is outside 1-65535.
    """
    if port is not None:
        if not 0 < int(port) < 65536:
            raise ConfigError(f"Port {port} is out of range", hint="Use a port between 1 and 65535.")
        return int(port)

    known = parse_database(database)
    if known is None:
        raise UnknownDatabase(str(database), [d.value for d in Database])
    return DEFAULT_PORTS[known]


def port_for(target: DatabaseWithPort) -> int:
    return resolve_port(target.database, target.port)
