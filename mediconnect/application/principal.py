from dataclasses import dataclass

from .status import Role


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as attached by the auth layer."""
    id: str
    role: Role

    @property
    def is_doctor(self) -> bool:
        return self.role == Role.DOCTOR

    @property
    def is_patient(self) -> bool:
        return self.role == Role.PATIENT
