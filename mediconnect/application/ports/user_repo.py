from dataclasses import dataclass
from typing import Protocol, Optional

from ..status import Role


@dataclass
class UserDto:
    id: str
    first_name: str
    last_name: str
    email: str
    role: Role
    consultation_fee: Optional[float] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class UserRepository(Protocol):
    def get_by_id(self, user_id: str) -> Optional[UserDto]:
        ...
