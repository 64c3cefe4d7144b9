from __future__ import annotations

from typing import Any, Dict, Optional
from enum import Enum
from datetime import datetime, timezone
from uuid import uuid4, UUID

from pydantic import BaseModel, Field, ConfigDict


# ----------------------------------------------------------------------
# Event Types
# ----------------------------------------------------------------------
class GenerationEventType(str, Enum):
    """
    Stage transitions emitted while a document is being generated.

    Events follow pipeline order. A generation ends with exactly one of
    GENERATION_COMPLETED or GENERATION_FAILED.
    """

    GENERATION_STARTED = "generation_started"
    TEMPLATE_RESOLVED = "template_resolved"
    CONTENT_RENDERED = "content_rendered"
    ARTIFACT_GENERATED = "artifact_generated"
    DOCUMENT_STORED = "document_stored"
    GENERATION_COMPLETED = "generation_completed"
    GENERATION_FAILED = "generation_failed"


TERMINAL_EVENT_TYPES = frozenset(
    {
        GenerationEventType.GENERATION_COMPLETED,
        GenerationEventType.GENERATION_FAILED,
    }
)


# ----------------------------------------------------------------------
# Event Model
# ----------------------------------------------------------------------
class GenerationEvent(BaseModel):
    """
    An immutable observation of a stage transition.

    Events are observational only; they never carry artifact bytes and
    never influence the outcome of a generation.
    """

    event_id: UUID = Field(default_factory=uuid4)
    document_number: str = Field(..., description="Document being generated")
    template_id: str
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    event_type: GenerationEventType

    # Optional contextual metadata (format, size, error type, ...)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
