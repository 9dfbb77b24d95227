"""Event bus for scanner notifications.

Provides a publish/subscribe mechanism between the scanner and its consumers.
Handlers run on the bus worker thread, so a slow or failing handler never
blocks a sweep. Handlers should still return quickly.

Usage:
    from app.events import EventBus, EventType

    bus = EventBus()

    # Subscribe to events
    bus.subscribe(EventType.DEVICE_DISCOVERED, lambda e: print(e.data["device"]))

    # Publish events
    bus.publish(EventType.SCAN_PROGRESS, {"message": "Scanning network 192.168.1.x..."})
"""
import queue
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional

from config import get_logger

logger = get_logger(__name__)


class EventType(Enum):
    """Types of events that can be published/subscribed."""

    # Device events
    DEVICE_DISCOVERED = auto()

    # Sweep events
    SCAN_PROGRESS = auto()
    SCANNING_STATE_CHANGED = auto()

    # Scheduler events
    NEXT_SCAN_TIME_CHANGED = auto()
    LAST_SCAN_TIME_CHANGED = auto()


# Published once per probed address; kept out of the debug log
_HIGH_VOLUME = frozenset({EventType.SCAN_PROGRESS})


@dataclass
class Event:
    """Represents an event with type and data.

    Attributes:
        event_type: The type of event.
        data: Event payload, e.g. {"device": NetworkDevice} or {"message": str}.
        timestamp: When the event was created.
        source: Optional identifier of the event source.
    """
    event_type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)
    source: Optional[str] = None

    def __str__(self) -> str:
        return f"Event({self.event_type.name}, data={self.data})"


# Type alias for event handlers
EventHandler = Callable[[Event], None]


class EventBus:
    """Thread-safe publish/subscribe event bus.

    Events are processed asynchronously by default. Handler exceptions are
    logged and never reach the publisher.

    Attributes:
        async_mode: If True (default), events are processed in a background thread.

    Example:
        >>> bus = EventBus()
        >>> bus.subscribe(EventType.SCAN_PROGRESS, lambda e: print(e.data["message"]))
        >>> bus.publish(EventType.SCAN_PROGRESS, {"message": "Starting network scan..."})
    """

    def __init__(self, async_mode: bool = True):
        self._subscribers: Dict[EventType, List[EventHandler]] = {}
        self._wildcard: List[EventHandler] = []
        self._lock = threading.Lock()
        self._async_mode = async_mode
        self._event_queue: queue.Queue = queue.Queue()
        self._running = False
        self._worker_thread: Optional[threading.Thread] = None

        if async_mode:
            self._start_worker()

    @property
    def async_mode(self) -> bool:
        return self._async_mode

    def _start_worker(self) -> None:
        """Start the background event processing thread."""
        self._running = True
        self._worker_thread = threading.Thread(
            target=self._process_events,
            daemon=True,
            name="EventBus-Worker"
        )
        self._worker_thread.start()
        logger.debug("EventBus worker thread started")

    def _process_events(self) -> None:
        """Process events from the queue in background thread."""
        while self._running:
            try:
                event = self._event_queue.get(timeout=0.1)
            except queue.Empty:
                continue
            try:
                self._dispatch_event(event)
            except Exception as e:
                logger.error(f"Error processing event: {e}", exc_info=True)
            finally:
                self._event_queue.task_done()

    def _dispatch_event(self, event: Event) -> None:
        """Dispatch event to all subscribers."""
        with self._lock:
            handlers = self._subscribers.get(event.event_type, []) + self._wildcard

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Error in event handler for {event.event_type.name}: {e}",
                    exc_info=True
                )

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Subscribe to an event type.

        Args:
            event_type: The type of event to subscribe to.
            handler: Callback function that takes an Event parameter.

        Example:
            >>> def on_device(event):
            ...     print(f"Device changed: {event.data['device']}")
            >>> bus.subscribe(EventType.DEVICE_DISCOVERED, on_device)
        """
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)

        logger.debug(f"Subscribed to {event_type.name}")

    def subscribe_all(self, handler: EventHandler) -> None:
        """Receive every event regardless of type."""
        with self._lock:
            self._wildcard.append(handler)

    def unsubscribe(self, event_type: Optional[EventType], handler: EventHandler) -> bool:
        """Unsubscribe from an event type, or from subscribe_all when event_type is None.

        Returns:
            True if handler was found and removed, False otherwise.
        """
        with self._lock:
            handlers = self._wildcard if event_type is None else self._subscribers.get(event_type, [])
            try:
                handlers.remove(handler)
            except ValueError:
                return False
        logger.debug(f"Unsubscribed from {event_type.name if event_type else 'all events'}")
        return True

    def publish(self, event_type: EventType, data: Dict[str, Any] = None,
                source: str = None) -> None:
        """Publish an event.

        Args:
            event_type: The type of event to publish.
            data: Optional data to include with the event.
            source: Optional identifier of the event source.

        Example:
            >>> bus.publish(EventType.SCANNING_STATE_CHANGED, {"is_scanning": True})
        """
        event = Event(
            event_type=event_type,
            data=data or {},
            source=source
        )

        if self._async_mode and self._running:
            self._event_queue.put(event)
        else:
            self._dispatch_event(event)

        if event_type not in _HIGH_VOLUME:
            logger.debug(f"Published {event_type.name}")

    def wait_until_idle(self, timeout: float = 5.0) -> bool:
        """Block until every queued event has been dispatched.

        Returns:
            False if the timeout expired first.
        """
        if not self._async_mode:
            return True
        deadline = time.monotonic() + timeout
        with self._event_queue.all_tasks_done:
            while self._event_queue.unfinished_tasks:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._event_queue.all_tasks_done.wait(remaining)
        return True

    def clear_subscribers(self, event_type: Optional[EventType] = None) -> None:
        """Clear subscribers for an event type, or all subscribers when None."""
        with self._lock:
            if event_type:
                self._subscribers.pop(event_type, None)
            else:
                self._subscribers.clear()
                self._wildcard.clear()

    def get_subscriber_count(self, event_type: EventType) -> int:
        """Get the number of subscribers for an event type."""
        with self._lock:
            return len(self._subscribers.get(event_type, []))

    def shutdown(self, drain_timeout: float = 1.0) -> None:
        """Dispatch what is queued, then stop the worker thread."""
        if self._running:
            self.wait_until_idle(drain_timeout)
        self._running = False
        if self._worker_thread:
            self._worker_thread.join(timeout=1.0)
            self._worker_thread = None
        logger.debug("EventBus shut down")


# Global event bus instance
_global_bus: Optional[EventBus] = None
_global_bus_lock = threading.Lock()


def get_event_bus() -> EventBus:
    """Get or create the global event bus instance."""
    global _global_bus
    with _global_bus_lock:
        if _global_bus is None:
            _global_bus = EventBus(async_mode=True)
        return _global_bus
