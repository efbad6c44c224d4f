"""zotlink configuration — loads and validates ~/.zotlink/config.yaml.

Settings:
  database            Zotero or Juris-M (selects the default port)
  port                explicit Better BibTeX port; overrides the default
  timeout             HTTP timeout in seconds
  freshness_seconds   how long the all-citekeys snapshot stays fresh

ZOTLINK_DATABASE and ZOTLINK_PORT override the file.  If no config
exists, defaults are used; create_default() writes a commented starter.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from zotlink.cache import DEFAULT_FRESHNESS_SECONDS
from zotlink.errors import ConfigError
from zotlink.http import DEFAULT_TIMEOUT
from zotlink.paths import home_dir
from zotlink.ports import Database, DatabaseWithPort, parse_database


@dataclass
class ZotLinkConfig:
    """Parsed config.yaml."""

    database: Database | str = Database.ZOTERO
    port: int | None = None
    timeout: float = DEFAULT_TIMEOUT
    freshness_seconds: float = DEFAULT_FRESHNESS_SECONDS

    @property
    def target(self) -> DatabaseWithPort:
        return DatabaseWithPort(database=self.database, port=self.port)


_DEFAULT_CONFIG = """\
# zotlink configuration
# Which Better BibTeX endpoint to talk to.

# Zotero (port 23119) or Juris-M (port 24119).
database: Zotero

# Set only if you changed Zotero's connector port.
# port: 23119

# HTTP timeout in seconds for each Better BibTeX call.
timeout: 10

# Seconds before the all-citekeys snapshot is refreshed.
freshness_seconds: 60
"""


def config_path(base: Path | None = None) -> Path:
    """Path to config.yaml inside *base* (default ~/.zotlink/)."""
    return (base or home_dir()) / "config.yaml"


def create_default(path: Path | None = None) -> Path:
    """Write a starter config to *path* (default ~/.zotlink/config.yaml) if it doesn't exist.

    Returns the path.
    """
    p = path or config_path()
    if not p.exists():
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(_DEFAULT_CONFIG, encoding="utf-8")
    return p


def _number(data: dict, name: str, default: float, cast=float):
    value = data.get(name, default)
    if value is None:
        return default
    try:
        return cast(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{name}' must be a number, got {value!r}") from e


def _database(value) -> Database | str:
    name = str(value).strip()
    if not name:
        return Database.ZOTERO
    return parse_database(name) or name


def load_config(path: Path | None = None) -> ZotLinkConfig:
    """Load and validate config.yaml, then apply environment overrides.

    Returns defaults if the file is missing.
    """
    p = path or config_path()
    data: dict = {}
    if p.exists():
        raw = p.read_text(encoding="utf-8")
        try:
            data = yaml.safe_load(raw) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {p}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Expected a YAML mapping in {p}, got {type(data).__name__}")

    database = _database(data.get("database", Database.ZOTERO.value))
    port = _number(data, "port", None, int)
    timeout = _number(data, "timeout", DEFAULT_TIMEOUT)
    freshness = _number(data, "freshness_seconds", DEFAULT_FRESHNESS_SECONDS)

    env_db = os.environ.get("ZOTLINK_DATABASE", "")
    if env_db:
        database = _database(env_db)
    env_port = os.environ.get("ZOTLINK_PORT", "")
    if env_port:
        if not env_port.isdigit():
            raise ConfigError(f"ZOTLINK_PORT must be a number, got {env_port!r}")
        port = int(env_port)

    if timeout <= 0:
        raise ConfigError(f"'timeout' must be positive, got {timeout}")

    return ZotLinkConfig(
        database=database,
        port=port,
        timeout=timeout,
        freshness_seconds=freshness,
    )
