from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

MONEY_QUANT = Decimal("0.01")
ZERO_MONEY = Decimal("0.00")


def to_money(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def parse_money(value: Decimal | int | float | str | None) -> Decimal:
    """Parse a platform amount ("12.50", 12.5, None) into cents, treating blanks as zero."""
    if value is None:
        return ZERO_MONEY
    if isinstance(value, str) and not value.strip():
        return ZERO_MONEY
    try:
        return to_money(value)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid money amount: {value!r}") from exc


def money_float(value: Decimal | None) -> float:
    return float(to_money(value if value is not None else ZERO_MONEY))
