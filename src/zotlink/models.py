"""Data types shared by the zotlink client."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CiteKey:
    """One bibliographic item, scoped to a Zotero library."""

    key: str
    library: int = 1


@dataclass(frozen=True)
class CiteKeyExport:
    """One row of a library's exported citekey index."""

    library_id: int
    citekey: str
    title: str

    def to_dict(self) -> dict[str, Any]:
        return {"libraryID": self.library_id, "citekey": self.citekey, "title": self.title}


@dataclass(frozen=True)
class Group:
    """A Zotero library: the personal library or a shared group."""

    id: int
    name: str


@dataclass(frozen=True)
class CollectionPath:
    """A collection an item belongs to, with its root-to-leaf path."""

    key: str
    name: str
    full_path: str


@dataclass
class CiteKeySnapshot:
    """Result of :meth:`BBTClient.get_all_citekeys`."""

    citekeys: list[CiteKeyExport] = field(default_factory=list)
    from_cache: bool = False


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a client operation: a value, or nothing.

    ``error`` carries the human-readable failure text when there is one.
    A lookup that simply found nothing has no error.
    """

    value: T | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.value is not None

    @classmethod
    def of(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def missing(cls) -> Result[T]:
        return cls()

    @classmethod
    def failed(cls, error: str) -> Result[T]:
        return cls(error=error)


def citekey_from_any(item: dict[str, Any]) -> CiteKey | None:
    """Extract a :class:`CiteKey` from an item record of any export shape."""
    if not isinstance(item, dict):
        return None
    key = item.get("citekey") or item.get("citationKey") or item.get("citation-key")
    if not key:
        return None
    library = item.get("libraryID", item.get("library", 1))
    try:
        library = int(library)
    except (TypeError, ValueError):
        library = 1
    return CiteKey(key=str(key), library=library)
