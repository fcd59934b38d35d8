from .models import TERMINAL_EVENT_TYPES, AuditEvent, AuditEventType
from .emitter import AuditEventEmitter, NullEventEmitter
from .memory_emitter import MemoryQueueEventEmitter

__all__ = [
    "TERMINAL_EVENT_TYPES",
    "AuditEvent",
    "AuditEventType",
    "AuditEventEmitter",
    "NullEventEmitter",
    "MemoryQueueEventEmitter",
]
