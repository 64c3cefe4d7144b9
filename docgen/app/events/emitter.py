from __future__ import annotations

import logging
from typing import Protocol

from docgen.app.events.models import TERMINAL_EVENT_TYPES, GenerationEvent

logger = logging.getLogger(__name__)


class GenerationEventEmitter(Protocol):
    """
    Receives stage transitions of ``generate_document`` calls.

    The service swallows and logs anything ``emit`` raises.
    """

    async def emit(self, event: GenerationEvent) -> None:
        ...


class LoggingEventEmitter:
    """
    Default emitter: writes every transition to the log.

    Intermediate stages go to DEBUG; the terminal event of a call goes to
    INFO (completed) or WARNING (failed).
    """

    def __init__(self, log: logging.Logger = logger) -> None:
        self._log = log

    async def emit(self, event: GenerationEvent) -> None:
        if event.event_type not in TERMINAL_EVENT_TYPES:
            level = logging.DEBUG
        elif event.details and "error_type" in event.details:
            level = logging.WARNING
        else:
            level = logging.INFO

        self._log.log(
            level,
            "[%s] %s template=%s details=%s",
            event.document_number or "-",
            event.event_type.value,
            event.template_id,
            event.details or {},
        )
