from .models import VerificationEvent, VerificationEventType
from .emitter import VerificationEventEmitter, NullEventEmitter
from .memory_emitter import MemoryQueueEventEmitter

__all__ = [
    "VerificationEvent",
    "VerificationEventType",
    "VerificationEventEmitter",
    "NullEventEmitter",
    "MemoryQueueEventEmitter",
]
