from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Optional


class VisitStatus:
    WAITING = 'waiting'
    IN_CONSULTATION = 'in-consultation'
    COMPLETED = 'completed'
    BILLED = 'billed'

    # Workflow order; a visit only ever moves one step to the right.
    ORDER = (WAITING, IN_CONSULTATION, COMPLETED, BILLED)


class TokenSource:
    SEQUENCE = 'sequence'   # atomic, store-side counter
    OFFLINE = 'offline'     # client-side count fallback, may duplicate


@dataclass(frozen=True)
class Visit:
    id: int
    token_number: str
    visit_date: str
    name: str
    age: Optional[int] = None
    gender: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    status: str = VisitStatus.WAITING
    assigned_doctor: Optional[str] = None
    symptoms: Optional[str] = None
    prescription: Optional[str] = None
    bill_amount: Optional[Decimal] = None
    token_source: str = TokenSource.SEQUENCE
    created_by: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def is_offline_token(self) -> bool:
        return self.token_source == TokenSource.OFFLINE

    def to_dict(self) -> dict:
        data = asdict(self)
        if self.bill_amount is not None:
            data['bill_amount'] = str(self.bill_amount)
        return data
