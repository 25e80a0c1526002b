"""
Explicit cancellation tokens.

A token is handed to every call that may be superseded. Callers compare
tokens by identity to decide whether a late result may still be committed.
"""

import asyncio
from typing import Optional

from shared.errors import RequestCancelledError


class CancellationToken:
    """One-shot cancellation flag that can also interrupt waits.

    Safe to build outside a running loop; the event backing ``sleep`` is
    only created on the first wait.
    """

    def __init__(self, reason: Optional[str] = None):
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: Optional[str] = None) -> None:
        if reason:
            self.reason = reason
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RequestCancelledError(self.reason or "Request cancelled")

    async def sleep(self, delay: float) -> None:
        """Wait ``delay`` seconds, returning early and raising if cancelled."""
        if delay > 0 and not self._cancelled:
            if self._event is None:
                self._event = asyncio.Event()
            try:
                await asyncio.wait_for(self._event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        self.raise_if_cancelled()

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"<CancellationToken {state} at {id(self):#x}>"
