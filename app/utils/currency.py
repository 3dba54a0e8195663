from decimal import Decimal, ROUND_HALF_UP

MINOR_UNITS = Decimal("100")


def to_minor_units(amount: Decimal) -> int:
    """Convert rupees to paise, the unit gateways bill in."""
    return int((Decimal(amount) * MINOR_UNITS).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(value: int | str | float) -> Decimal:
    """Convert paise back to rupees."""
    return (Decimal(str(value)) / MINOR_UNITS).quantize(Decimal("0.01"))


def quantize_amount(amount: Decimal | int | float | str) -> Decimal:
    return Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal) -> str:
    """Render an amount the way UPI links expect it (no trailing exponent)."""
    return f"{quantize_amount(amount):f}"
