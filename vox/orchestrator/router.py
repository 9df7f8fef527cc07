import logging
from typing import Callable, Dict, Awaitable, Any, List

from vox.orchestrator.events import Event

logger = logging.getLogger(__name__)

EventHandler = Callable[..., Awaitable[Any]]

class EventRouter:
    def __init__(self):
        self._handlers: Dict[Event, List[EventHandler]] = {}

    def register(self, event: Event, handler: EventHandler):
        self._handlers.setdefault(event, []).append(handler)

    def unregister(self, event: Event, handler: EventHandler):
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    async def dispatch(self, event: Event, *args, **kwargs):
        for handler in list(self._handlers.get(event, [])):
            try:
                logger.debug(f"Dispatching event {event.name}", extra={"event": event.name})
                await handler(*args, **kwargs)
            except Exception as e:
                # Subscribers must never break the pipeline
                logger.error(f"Error handling event {event.name}: {e}", exc_info=True)
