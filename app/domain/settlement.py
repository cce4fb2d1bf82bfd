"""Settlement calculation for a started trip.

The platform keeps a fixed share of the gross rental amount and the host
earns the remainder. Amounts are rounded to cents, half away from zero, at
each point, and the host earning is derived from the rounded fee so the two
always add back up to the gross.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from app.core.exceptions import ValidationError

CENTS = Decimal("0.01")

# Default platform share; the running value comes from settings.
PLATFORM_COMMISSION_RATE = Decimal("0.10")


@dataclass(frozen=True)
class SettlementSplit:
    gross: Decimal
    fee: Decimal
    host_earning: Decimal
    commission_rate: Decimal


def to_decimal(value: Decimal | int | float | str, name: str = "amount") -> Decimal:
    """Coerce a money-like value to Decimal without float artifacts."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValidationError(f"{name} must be a number")
    else:
        raise ValidationError(f"{name} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{name} must be finite")
    return result


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def settle(
    gross_amount: Decimal | int | float | str,
    commission_rate: Decimal | int | float | str = PLATFORM_COMMISSION_RATE,
) -> SettlementSplit:
    """Split a gross amount into platform fee and host earning.

    Args:
        gross_amount: Amount the renter paid
        commission_rate: Platform share between 0 and 1

    Returns:
        SettlementSplit with fee = round(gross * rate) and
        host_earning = round(gross - fee), both taken from the unrounded
        gross; only the recorded gross is rounded
    """
    gross = to_decimal(gross_amount, "gross_amount")
    rate = to_decimal(commission_rate, "commission_rate")

    if gross < 0:
        raise ValidationError("gross_amount must not be negative")
    if rate < 0 or rate > 1:
        raise ValidationError("commission_rate must be between 0 and 1")

    fee = round_money(gross * rate)
    host_earning = round_money(gross - fee)

    return SettlementSplit(
        gross=round_money(gross),
        fee=fee,
        host_earning=host_earning,
        commission_rate=rate,
    )
