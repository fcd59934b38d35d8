from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional

from compliance_auditor.app.events.emitter import AuditEventEmitter
from compliance_auditor.app.events.models import AuditEvent, TERMINAL_EVENT_TYPES


logger = logging.getLogger(__name__)


class MemoryQueueEventEmitter(AuditEventEmitter):
    """
    Queue-backed sink feeding the `/audit/stream` SSE response.

    One producer (the executor task) and one consumer (the response
    body). The stream ends after `complete` or `failed`; anything
    emitted later is counted in `dropped` and not delivered.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Optional[AuditEvent]] = asyncio.Queue()
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, event: AuditEvent) -> None:
        if self._closed:
            self.dropped += 1
            logger.debug(
                "Dropping %s event for closed stream of audit %s",
                event.event_type.value,
                event.audit_id,
            )
            return

        self._queue.put_nowait(event)

        if event.event_type in TERMINAL_EVENT_TYPES:
            await self.close()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    async def stream(self) -> AsyncIterator[AuditEvent]:
        """Yield events in emission order until the stream is closed."""
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event
