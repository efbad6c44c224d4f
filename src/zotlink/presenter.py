"""Presentation hooks: busy indicators and user-facing notices.

The client never raises past an operation; instead it tells a
:class:`Presenter` what went wrong.  Embedders supply their own (a
status-bar spinner, a toast); the CLI uses :class:`LogPresenter`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Protocol

logger = logging.getLogger(__name__)

NOTICE_TIMEOUT = 10.0


class Presenter(Protocol):
    def busy(self, message: str) -> AbstractContextManager[None]: ...

    def notice(self, message: str, timeout: float = NOTICE_TIMEOUT) -> None: ...


class LogPresenter:
    """Routes notices to the ``zotlink`` logger."""

    @contextmanager
    def busy(self, message: str) -> Iterator[None]:
        t0 = time.monotonic()
        logger.debug("BUSY %s", message)
        try:
            yield
        finally:
            logger.debug("DONE %s (%.2fs)", message, time.monotonic() - t0)

    def notice(self, message: str, timeout: float = NOTICE_TIMEOUT) -> None:
        logger.warning(message)


class SilentPresenter:
    """Collects notices instead of showing them."""

    def __init__(self) -> None:
        self.notices: list[str] = []
        self.busy_messages: list[str] = []
        self.busy_depth = 0

    @contextmanager
    def busy(self, message: str) -> Iterator[None]:
        self.busy_messages.append(message)
        self.busy_depth += 1
        try:
            yield
        finally:
            self.busy_depth -= 1

    def notice(self, message: str, timeout: float = NOTICE_TIMEOUT) -> None:
        self.notices.append(message)
