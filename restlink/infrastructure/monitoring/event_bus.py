"""In-process dispatcher for domain events.

Handlers subscribe per event type (or to every event). Dispatch is synchronous
and fire-and-forget: a failing handler is logged and never disturbs the
request pipeline or the other handlers.
"""

import logging
from collections import defaultdict
from typing import Callable, DefaultDict, List, Optional, Type

from restlink.domain.events.client_events import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


class EventDispatcher:
    """Simple publish/subscribe hub for DomainEvents."""

    def __init__(self):
        self._handlers: DefaultDict[Optional[Type[DomainEvent]], List[EventHandler]] = defaultdict(list)

    def subscribe(self, handler: EventHandler, event_type: Optional[Type[DomainEvent]] = None) -> Callable[[], None]:
        """Registers `handler` for `event_type` (all events when None).

        Returns:
            A callable that removes the subscription.
        """
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def dispatch(self, event: DomainEvent) -> None:
        logger.debug(f"EVENT: {event}")
        for event_type in type(event).__mro__:
            if event_type not in self._handlers:
                continue
            for handler in list(self._handlers[event_type]):
                self._invoke(handler, event)
        for handler in list(self._handlers.get(None, [])):
            self._invoke(handler, event)

    @staticmethod
    def _invoke(handler: EventHandler, event: DomainEvent) -> None:
        try:
            handler(event)
        except Exception as e:
            logger.error(f"Event handler {handler!r} failed for {type(event).__name__}: {e}", exc_info=True)
