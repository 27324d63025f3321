import inspect
import logging
from collections import defaultdict
from typing import Dict, List, Any

from ...application.ports.event_bus import EventBus, EventHandler

logger = logging.getLogger(__name__)


class InMemoryEventBus(EventBus):
    """In-process pub/sub. Handlers may be sync or async; a failing handler never affects the others."""

    def __init__(self) -> None:
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: EventHandler) -> None:
        self._handlers[topic].append(handler)

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        for handler in list(self._handlers.get(topic, [])) + list(self._handlers.get("*", [])):
            try:
                result = handler(topic, payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Event handler failed for {topic}")
