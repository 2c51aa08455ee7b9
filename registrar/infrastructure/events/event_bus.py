"""
Event bus implementation for domain event publishing and subscription.

The event bus routes enrollment and schedule-change events to notification
handlers. Delivery happens outside the domain, so a failing handler is logged
and never aborts the operation that published the event.
"""

import threading
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from collections.abc import Callable

from ...core.observability import get_logger
from ...domain.shared.base import DomainEvent

logger = get_logger(__name__)

EventHandler = Callable[[DomainEvent], None]


class EventBusInterface(ABC):
    """
    Abstract interface for event bus implementations.

    Defines the contract for publishing events and subscribing to event types.
    """

    @abstractmethod
    def publish(self, event: DomainEvent) -> None:
        """
        Publish a domain event to all registered handlers.

        Args:
            event: Domain event to publish
        """

    @abstractmethod
    def subscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> None:
        """
        Subscribe a handler to a specific event type.

        Subscribing to a base class receives every subclass event as well.
        """

    @abstractmethod
    def unsubscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> None:
        pass

    @abstractmethod
    def clear_handlers(self, event_type: type[DomainEvent] | None = None) -> None:
        """
        Clear event handlers.

        Args:
            event_type: Optional event type to clear handlers for. If None, clears all.
        """


class InMemoryEventBus(EventBusInterface):
    """
    In-memory implementation of event bus.

    Handlers run synchronously on the publishing thread, in subscription
    order. Publishing is safe from several allocation worker threads.
    """

    def __init__(self, max_history_size: int = 1000):
        self._handlers: dict[type[DomainEvent], list[EventHandler]] = defaultdict(list)
        self._event_history: deque[DomainEvent] = deque(maxlen=max_history_size)
        self._lock = threading.RLock()

    def publish(self, event: DomainEvent) -> None:
        """
        Publish a domain event synchronously to all registered handlers.

        Args:
            event: Domain event to publish
        """
        event_name = type(event).__name__
        with self._lock:
            self._event_history.append(event)
            handlers = [
                handler
                for event_type in type(event).__mro__
                for handler in self._handlers.get(event_type, ())
            ]

        if not handlers:
            logger.debug("No handlers registered", event_type=event_name)
            return

        logger.debug(
            "Publishing event",
            event_type=event_name,
            handler_count=len(handlers),
            aggregate_id=str(event.aggregate_id),
        )

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                # Continue with other handlers even if one fails
                logger.exception(
                    "Event handler failed",
                    event_type=event_name,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                )

    def subscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> None:
        """
        Subscribe a synchronous handler to a specific event type.

        Args:
            event_type: Type of event to subscribe to
            handler: Handler function to call when event is published
        """
        with self._lock:
            if handler in self._handlers[event_type]:
                logger.warning(
                    "Handler already subscribed", event_type=event_type.__name__
                )
                return
            self._handlers[event_type].append(handler)
        logger.debug("Subscribed handler", event_type=event_type.__name__)

    def unsubscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> None:
        with self._lock:
            if handler in self._handlers.get(event_type, ()):
                self._handlers[event_type].remove(handler)
                return
        logger.warning("Handler not found", event_type=event_type.__name__)

    def clear_handlers(self, event_type: type[DomainEvent] | None = None) -> None:
        with self._lock:
            if event_type:
                self._handlers.pop(event_type, None)
            else:
                self._handlers.clear()

    def get_handler_count(self, event_type: type[DomainEvent]) -> int:
        with self._lock:
            return len(self._handlers.get(event_type, ()))

    def get_event_history(
        self, event_type: type[DomainEvent] | None = None
    ) -> list[DomainEvent]:
        """
        Get history of published events, oldest first.

        Args:
            event_type: Optional event type to filter by (exact type match)
        """
        with self._lock:
            if event_type:
                return [event for event in self._event_history if type(event) is event_type]
            return list(self._event_history)

    def clear_event_history(self) -> None:
        with self._lock:
            self._event_history.clear()
