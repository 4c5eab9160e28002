"""
Domain Event Bus
Typed publish/subscribe registry keyed by event kind.
Handlers for one event run concurrently; a failing handler never affects its siblings.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List

from .events import DomainEvent, EventKind

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], Awaitable[None]]


@dataclass
class HandlerFailure:
    handler_name: str
    error: BaseException


@dataclass
class EmitResult:
    """Outcome of one emit - which handlers ran and which failed"""

    kind: EventKind
    handled: int = 0
    failures: List[HandlerFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class EventBus:
    """Registry mapping event kind to an ordered list of async handlers"""

    def __init__(self):
        self._handlers: Dict[EventKind, List[EventHandler]] = defaultdict(list)

    def on(self, kind: EventKind, handler: EventHandler) -> None:
        """Register a handler for the lifetime of the process"""
        self._handlers[EventKind(kind)].append(handler)
        logger.debug(f"Registered handler {_handler_name(handler)} for {kind}")

    def handlers_for(self, kind: EventKind) -> List[EventHandler]:
        return list(self._handlers.get(EventKind(kind), []))

    async def emit(self, event: DomainEvent) -> EmitResult:
        """Run every handler for the event's kind concurrently and wait for all of them"""
        handlers = self.handlers_for(event.kind)
        result = EmitResult(kind=event.kind, handled=len(handlers))
        if not handlers:
            logger.debug(f"No handlers registered for {event.kind.value}")
            return result

        outcomes = await asyncio.gather(
            *(self._invoke(handler, event) for handler in handlers),
            return_exceptions=True,
        )
        for handler, outcome in zip(handlers, outcomes):
            if isinstance(outcome, BaseException):
                name = _handler_name(handler)
                result.failures.append(HandlerFailure(handler_name=name, error=outcome))
                logger.error(
                    f"❌ Handler {name} failed for {event.kind.value} (job {event.job_id}): {outcome}"
                )

        if result.ok:
            logger.info(f"✅ {event.kind.value} delivered to {len(handlers)} handler(s) (job {event.job_id})")
        return result

    @staticmethod
    async def _invoke(handler: EventHandler, event: DomainEvent) -> None:
        await handler(event)
