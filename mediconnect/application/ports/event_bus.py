from typing import Protocol, Callable, Dict, Any

EventHandler = Callable[[str, Dict[str, Any]], Any]


class EventBus(Protocol):
    def subscribe(self, topic: str, handler: EventHandler) -> None:
        ...

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        ...
