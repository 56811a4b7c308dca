from __future__ import annotations

import asyncio
from typing import AsyncIterator

from walletsign.app.events.models import VerificationEvent


class MemoryQueueEventEmitter:
    """
    In-memory async emitter with a single consumer.

    Closes itself after the first terminal event, which ends ``stream``.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[VerificationEvent | None] = asyncio.Queue()
        self._closed = False

    async def emit(self, event: VerificationEvent) -> None:
        if self._closed:
            return

        await self._queue.put(event)

        if event.is_terminal:
            await self.close()

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            await self._queue.put(None)

    async def stream(self) -> AsyncIterator[VerificationEvent]:
        """Yield emitted events in order until the emitter closes."""
        while True:
            event = await self._queue.get()
            if event is None:
                break
            yield event
