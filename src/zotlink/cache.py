"""In-memory caches in front of Better BibTeX.

Three caches, all owned by one :class:`ResponseCache` that a client holds:

  library_by_citekey   citekey -> library id, filled lazily, never invalidated
  groups               the user's libraries, fetched once per cache lifetime
  citekeys             full citekey export of every library + refresh time

Caches only reduce call volume; Better BibTeX stays the source of truth
and stale data is acceptable.  Every write replaces a whole value (a new
dict or list) so a reader never sees a half-updated snapshot.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable

from zotlink.models import CiteKeyExport, Group

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_SECONDS = 60.0


class ResponseCache:
    def __init__(
        self,
        freshness_seconds: float = DEFAULT_FRESHNESS_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.freshness_seconds = freshness_seconds
        self._clock = clock
        self._library_by_citekey: dict[str, int] = {}
        self._groups: list[Group] | None = None
        self._citekeys: list[CiteKeyExport] = []
        self._refreshed_at: float | None = None

    # -- library ids ---------------------------------------------------------

    def library_for(self, citekey: str) -> int | None:
        return self._library_by_citekey.get(citekey)

    def remember_library(self, citekey: str, library_id: int) -> None:
        self._library_by_citekey = {**self._library_by_citekey, citekey: library_id}

    # -- groups --------------------------------------------------------------

    @property
    def groups(self) -> list[Group] | None:
        return self._groups

    def set_groups(self, groups: Iterable[Group]) -> None:
        # Filled at most once; a group created later is not seen until a new
        # cache is built.
        if self._groups is None:
            self._groups = list(groups)

    def group_id_for(self, name: str) -> int | None:
        for group in self._groups or []:
            if group.name == name:
                return group.id
        return None

    # -- citekey snapshot ----------------------------------------------------

    @property
    def citekeys(self) -> list[CiteKeyExport]:
        return self._citekeys

    @property
    def refreshed_at(self) -> float | None:
        return self._refreshed_at

    def citekeys_fresh(self) -> bool:
        """True when a non-empty snapshot is younger than the freshness window."""
        if not self._citekeys or self._refreshed_at is None:
            return False
        return self._clock() - self._refreshed_at < self.freshness_seconds

    def replace_citekeys(self, citekeys: Iterable[CiteKeyExport]) -> list[CiteKeyExport]:
        snapshot = list(citekeys)
        self._citekeys = snapshot
        self._refreshed_at = self._clock()
        logger.debug("Citekey snapshot replaced (%d keys)", len(snapshot))
        return snapshot
