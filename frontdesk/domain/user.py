from dataclasses import dataclass
from typing import Optional
from datetime import datetime


class Role:
    DOCTOR = 'doctor'
    RECEPTIONIST = 'receptionist'

    ALL = (DOCTOR, RECEPTIONIST)


class Capability:
    VIEW_QUEUE = 'view_queue'
    REGISTER_PATIENT = 'register_patient'
    START_CONSULTATION = 'start_consultation'
    SAVE_PRESCRIPTION = 'save_prescription'
    GENERATE_BILL = 'generate_bill'


_CAPABILITIES = {
    Role.RECEPTIONIST: frozenset({
        Capability.VIEW_QUEUE,
        Capability.REGISTER_PATIENT,
        Capability.GENERATE_BILL,
    }),
    Role.DOCTOR: frozenset({
        Capability.VIEW_QUEUE,
        Capability.START_CONSULTATION,
        Capability.SAVE_PRESCRIPTION,
    }),
}


def capabilities_for(role: Optional[str]) -> frozenset:
    """What a role may do; unknown roles get nothing."""
    return _CAPABILITIES.get(role, frozenset())


@dataclass
class User:
    id: int
    username: str
    role: str
    password_hash: bytes | str
    full_name: Optional[str] = None
    is_active: bool = True
    failed_attempts: int = 0
    locked_until: Optional[datetime] = None
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and now < self.locked_until

    @property
    def is_doctor(self):
        return self.role == Role.DOCTOR

    @property
    def display_name(self):
        return self.full_name or self.username


@dataclass(frozen=True)
class Session:
    subject_id: int
    username: str
    role: str

    @property
    def capabilities(self) -> frozenset:
        return capabilities_for(self.role)
