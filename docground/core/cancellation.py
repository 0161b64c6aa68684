"""Cooperative cancellation shared by every pipeline stage."""
import asyncio
from typing import Optional


class AbortSignal:
    """Single cancellation token threaded through a request.

    Stages check `aborted` before expensive work and return a cancelled
    result instead of raising.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


def is_aborted(signal: Optional[AbortSignal]) -> bool:
    """True if a signal was given and has fired."""
    return signal is not None and signal.aborted
