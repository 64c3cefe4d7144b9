from .models import GenerationEvent, GenerationEventType
from .emitter import GenerationEventEmitter, LoggingEventEmitter

__all__ = [
    "GenerationEvent",
    "GenerationEventType",
    "GenerationEventEmitter",
    "LoggingEventEmitter",
]
