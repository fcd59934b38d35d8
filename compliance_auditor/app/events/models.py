from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


# ----------------------------------------------------------------------
# Event types
# ----------------------------------------------------------------------
class AuditEventType(str, Enum):
    """
    Progress events emitted while an audit plan executes.

    Values are the wire names used as SSE event names. Renaming one
    breaks stream consumers.
    """

    # ------------------------------------------------------------------
    # Run Lifecycle
    # ------------------------------------------------------------------
    PLAN_READY = "plan-ready"
    AUDIT_COMPLETED = "complete"
    AUDIT_FAILED = "failed"

    # ------------------------------------------------------------------
    # Waves
    # ------------------------------------------------------------------
    WAVE_STARTED = "wave-start"
    WAVE_COMPLETED = "wave-complete"

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------
    TASK_STARTED = "task-start"
    TASK_COMPLETED = "task-complete"
    TASK_FAILED = "task-error"
    TASK_SKIPPED = "task-skipped"


TERMINAL_EVENT_TYPES = frozenset(
    {
        AuditEventType.AUDIT_COMPLETED,
        AuditEventType.AUDIT_FAILED,
    }
)


# ----------------------------------------------------------------------
# Event record
# ----------------------------------------------------------------------
class AuditEvent(BaseModel):
    """
    An immutable observation of a state transition during a run.

    Consumers cannot influence the run through an event. Events are the
    only progress surface; there is no polling API.
    """

    event_id: UUID = Field(default_factory=uuid4)
    audit_id: str = Field(..., description="The run identifier")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    event_type: AuditEventType

    # Event payload (plan, wave, task, result, report, error, ...)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    def to_sse_payload(self) -> str:
        """
        Render as a server-sent-events frame.
        """
        return (
            f"event: {self.event_type.value}\n"
            f"data: {self.model_dump_json()}\n\n"
        )
