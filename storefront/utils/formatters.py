"""
Display formatting helpers for cart responses and CLI output.
"""
from decimal import Decimal, InvalidOperation
from datetime import timedelta
from typing import Union, Optional


def money(value: Union[int, float, Decimal, str, None], currency: Optional[str] = "₹") -> str:
    """
    Format an amount with exactly 2 decimals and comma thousands separators.

    Args:
        value: Amount to format
        currency: Symbol prepended to the number (None for none)

    Returns:
        Formatted string, or "-" when the value is invalid.

    Examples:
        money(380) -> "₹380.00"
        money(1500.5) -> "₹1,500.50"
        money(-20, None) -> "-20.00"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    sign = "-" if num < 0 else ""
    num = abs(num)

    integer_part, decimal_part = f"{num:.2f}".split(".")
    reversed_int = integer_part[::-1]
    groups = [reversed_int[i:i+3] for i in range(0, len(reversed_int), 3)]
    integer_formatted = ','.join(groups)[::-1]

    return f"{sign}{currency or ''}{integer_formatted}.{decimal_part}"


def countdown(value: Union[timedelta, None]) -> str:
    """
    Format a remaining duration as HH:MM:SS.

    Examples:
        countdown(timedelta(hours=2, minutes=5)) -> "02:05:00"
        countdown(None) -> "-"
    """
    if value is None:
        return "-"

    total = max(0, int(value.total_seconds()))
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def tier_label(threshold_qty: int, price_per_unit: Decimal, unit: Optional[str] = None, currency: str = "₹") -> str:
    """Short tier hint such as "₹370.00/kg for 12+"."""
    return f"{money(price_per_unit, currency)}/{unit or 'unit'} for {threshold_qty}+"
