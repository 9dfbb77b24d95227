"""Application module for netsweep.

Contains the pieces an embedding application wires together:
- EventBus: Scanner event delivery
- AppDependencies: Scanner, detector chain and options built in one call
"""

from app.dependencies import AppDependencies, create_dependencies
from app.events import Event, EventBus, EventType, get_event_bus

__all__ = [
    "AppDependencies",
    "Event",
    "EventBus",
    "EventType",
    "create_dependencies",
    "get_event_bus",
]
