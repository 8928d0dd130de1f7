"""Number parsing utilities for prices and quantities."""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from storefront.exceptions import InvalidQuantityInputError

CENT = Decimal('0.01')
QUANTITY_PATTERN = re.compile(r"^\d+$")


def to_decimal(value, default=None):
    """
    Convert a catalog value (int, float, str, Decimal, None) to Decimal.

    Floats go through str() so 370.1 becomes Decimal('370.1') and not its
    binary expansion. Empty values return ``default``.
    """
    if value is None or value == '':
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f'Invalid amount: {value!r}')


def quantize_money(value: Decimal) -> Decimal:
    """Round an amount to cents, half up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_quantity_input(value) -> int:
    """
    Parse a quantity typed directly by the user.

    Rules:
    - Digits only (no sign, no decimals, no separators)
    - Surrounding whitespace is ignored
    - Integers are accepted as-is when non-negative

    Raises:
        InvalidQuantityInputError: (a ValueError) if the value is empty or
            not a whole non-negative number.
    """
    if value is None or isinstance(value, bool):
        raise InvalidQuantityInputError(value)

    if isinstance(value, int):
        if value < 0:
            raise InvalidQuantityInputError(value)
        return value

    cleaned = str(value).strip()
    if not cleaned or not QUANTITY_PATTERN.match(cleaned):
        raise InvalidQuantityInputError(value)

    return int(cleaned)
