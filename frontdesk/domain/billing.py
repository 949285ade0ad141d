from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from frontdesk.config.settings import Config


def _charge(value) -> Decimal:
    """Coerce a single charge: blanks, garbage and negatives count as zero."""
    if value is None or isinstance(value, bool):
        return Decimal(0)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return Decimal(0)
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal(0)
    if not amount.is_finite() or amount < 0:
        return Decimal(0)
    return amount


def to_minor_units(amount: Decimal, minor_units: int = Config.CURRENCY_MINOR_UNITS) -> Decimal:
    """Round half-up to the currency's smallest unit.

    >>> to_minor_units(Decimal('750.995'))
    Decimal('751.00')
    """
    return amount.quantize(Decimal(1).scaleb(-minor_units), rounding=ROUND_HALF_UP)


def total(consultation_fee=0, medication_cost=0, additional_charges=0,
          minor_units: int = Config.CURRENCY_MINOR_UNITS) -> Decimal:
    """Bill total for the three itemised charges.

    >>> total(500, 250, 0)
    Decimal('750.00')
    >>> total(-10, '250', None)
    Decimal('250.00')
    """
    amount = _charge(consultation_fee) + _charge(medication_cost) + _charge(additional_charges)
    return to_minor_units(amount, minor_units)
