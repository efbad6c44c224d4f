"""Single-flight admission gate for Better BibTeX calls.

Better BibTeX serializes requests internally and misbehaves when several
arrive at once, so every remote call in the process takes a turn here
first.  At most one ticket is running at any time; waiters are admitted
strictly in arrival order.

Usage::

    ticket = new_ticket()
    await queue.wait(ticket)
    try:
        text = await post_rpc(...)
    finally:
        queue.end(ticket)

or, equivalently, ``async with queue.turn(): ...``.

A caller that is admitted must call :meth:`CallQueue.end` before it
returns or raises; otherwise every later caller waits forever.  The queue
has no notion of success or failure and enforces no timeout.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import anyio

logger = logging.getLogger(__name__)

_serials = itertools.count(1)


class TicketWithdrawn(RuntimeError):
    """Raised by :meth:`CallQueue.wait` when the ticket was ended while pending."""


class Ticket:
    """Opaque queue token.  Compared by identity only."""

    __slots__ = ("serial",)

    def __init__(self) -> None:
        self.serial = next(_serials)

    def __repr__(self) -> str:
        return f"<Ticket #{self.serial}>"


def new_ticket() -> Ticket:
    return Ticket()


class CallQueue:
    """FIFO queue granting one turn at a time."""

    def __init__(self) -> None:
        self._running: Ticket | None = None
        # Insertion-ordered: the first key is the next ticket to run.
        self._pending: dict[Ticket, anyio.Event] = {}

    @property
    def running(self) -> Ticket | None:
        return self._running

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def busy(self) -> bool:
        return self._running is not None

    async def wait(self, ticket: Ticket) -> None:
        """Return once it is *ticket*'s turn.

        Returns without suspending when the queue is idle.  If the waiting
        task is cancelled the ticket leaves the queue; if it had already
        been granted the turn passes to the next ticket.
        """
        if ticket is self._running:
            return
        if self._running is None and not self._pending:
            self._running = ticket
            return

        event = anyio.Event()
        self._pending[ticket] = event
        logger.debug("%r queued behind %r (%d pending)", ticket, self._running, len(self._pending))
        try:
            await event.wait()
        except anyio.get_cancelled_exc_class():
            if self._pending.pop(ticket, None) is None and self._running is ticket:
                self._advance()
            raise

        if self._running is not ticket:
            raise TicketWithdrawn(f"{ticket!r} was ended before its turn")

    def end(self, ticket: Ticket) -> None:
        """Release *ticket*'s turn, or withdraw it if still pending.

        Safe to call for a ticket that never waited, and safe to call twice:
        both are no-ops and never touch another ticket's turn.
        """
        if ticket is self._running:
            self._advance()
            return

        event = self._pending.pop(ticket, None)
        if event is not None:
            logger.debug("%r withdrawn before its turn", ticket)
            event.set()

    def _advance(self) -> None:
        if not self._pending:
            self._running = None
            return
        ticket = next(iter(self._pending))
        event = self._pending.pop(ticket)
        self._running = ticket
        event.set()

    @asynccontextmanager
    async def turn(self, ticket: Ticket | None = None) -> AsyncIterator[Ticket]:
        """Hold a turn for the duration of the ``async with`` block."""
        ticket = ticket or new_ticket()
        await self.wait(ticket)
        try:
            yield ticket
        finally:
            self.end(ticket)


_default_queue: CallQueue | None = None


def default_queue() -> CallQueue:
    """Process-wide queue shared by every client that is not given its own."""
    global _default_queue
    if _default_queue is None:
        _default_queue = CallQueue()
    return _default_queue
