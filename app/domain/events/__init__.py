"""Events domain - typed lifecycle events and the in-process bus"""

from .bus import EmitResult, EventBus
from .events import AnyDomainEvent, DomainEvent, EventKind

__all__ = ["AnyDomainEvent", "DomainEvent", "EmitResult", "EventBus", "EventKind"]
