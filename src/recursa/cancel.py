# src/recursa/cancel.py
"""Cooperative cancellation for pipeline runs."""

from __future__ import annotations

import asyncio


class CancellationToken:
    """Signal that a run should stop and answer with what it has.

    The drill-down controller checks the token between steps and races
    in-flight model calls against it, so cancelling does not wait for a
    slow provider.
    """

    def __init__(self) -> None:
        self._cancel_requested = False
        self._event: asyncio.Event | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested

    def request_cancel(self) -> None:
        self._cancel_requested = True
        if self._event is not None:
            self._event.set()

    async def wait(self) -> None:
        """Block until cancellation is requested."""
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancel_requested:
                self._event.set()
        await self._event.wait()
