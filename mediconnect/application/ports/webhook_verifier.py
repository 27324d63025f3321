from typing import Protocol, Mapping


class WebhookVerifier(Protocol):
    async def verify(self, headers: Mapping[str, str], body: bytes) -> bool:
        ...
