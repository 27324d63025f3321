from typing import Protocol, List, Union


class EmailSender(Protocol):
    async def send(self, to: Union[str, List[str]], subject: str, html: str) -> None:
        ...
