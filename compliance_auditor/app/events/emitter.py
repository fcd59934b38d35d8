from __future__ import annotations

from typing import Protocol

from compliance_auditor.app.events.models import AuditEvent


class AuditEventEmitter(Protocol):
    """
    Sink for run progress.

    Per run the executor emits, in order:

        plan-ready
        wave-start (1), task-*..., wave-complete (1)
        wave-start (2), task-*..., wave-complete (2)
        wave-start (3), wave-complete (3)
        complete | failed

    Task events of one wave interleave in completion order. A sink must
    not block the executor for long and must never change the outcome
    of the run.
    """

    async def emit(self, event: AuditEvent) -> None:
        ...


class NullEventEmitter:
    """
    Discards every event.

    The executor's default when the caller passes no sink (plain
    `/audit` requests, planning-only tests).
    """

    async def emit(self, event: AuditEvent) -> None:
        return
