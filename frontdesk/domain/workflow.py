"""Visit status workflow.

    waiting -> in-consultation -> completed -> billed

Transitions validate against the visit's current status and return the
fields to write. They never mutate the visit; the repository persists the
changes and rebuilds its snapshot. A transition that was already applied is
rejected rather than re-applied, so callers must check the current status
before retrying an effectful call.
"""
from decimal import Decimal, InvalidOperation

from frontdesk.common.errors import EmptyPrescription, InvalidAmount, InvalidTransition
from frontdesk.domain.billing import to_minor_units
from frontdesk.domain.visits import Visit, VisitStatus

# Allowed source states per target state
TRANSITIONS = {
    VisitStatus.IN_CONSULTATION: (VisitStatus.WAITING,),
    # A doctor may complete without an explicit start step
    VisitStatus.COMPLETED: (VisitStatus.WAITING, VisitStatus.IN_CONSULTATION),
    VisitStatus.BILLED: (VisitStatus.COMPLETED,),
}


def can_transition(current: str, target: str) -> bool:
    return current in TRANSITIONS.get(target, ())


def next_status(current: str) -> str | None:
    """The status a visit moves to next, or None once it is billed."""
    try:
        idx = VisitStatus.ORDER.index(current)
    except ValueError:
        return None
    if idx + 1 >= len(VisitStatus.ORDER):
        return None
    return VisitStatus.ORDER[idx + 1]


def _require(visit: Visit, target: str) -> None:
    if not can_transition(visit.status, target):
        raise InvalidTransition(visit.status, target)


def start_consultation(visit: Visit) -> dict:
    _require(visit, VisitStatus.IN_CONSULTATION)
    return {'status': VisitStatus.IN_CONSULTATION}


def save_completion(visit: Visit, prescription_text: str) -> dict:
    text = (prescription_text or '').strip()
    if not text:
        raise EmptyPrescription()
    _require(visit, VisitStatus.COMPLETED)
    return {'status': VisitStatus.COMPLETED, 'prescription': text}


def _coerce_amount(amount) -> Decimal:
    if isinstance(amount, bool) or amount is None:
        raise InvalidAmount(f"bill amount must be a number, got {amount!r}")
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise InvalidAmount(f"bill amount must be a number, got {amount!r}")
    if not value.is_finite():
        raise InvalidAmount(f"bill amount must be finite, got {amount!r}")
    if value < 0:
        raise InvalidAmount(f"bill amount cannot be negative, got {amount!r}")
    try:
        return to_minor_units(value)
    except InvalidOperation:
        raise InvalidAmount(f"bill amount is out of range, got {amount!r}")


def generate_bill(visit: Visit, amount) -> dict:
    _require(visit, VisitStatus.BILLED)
    return {'status': VisitStatus.BILLED, 'bill_amount': _coerce_amount(amount)}
