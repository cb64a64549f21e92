"""
Fixed point arithmetic for the Trove Ledger model.

Token amounts, prices and rates are unsigned integers scaled by 10^9
(``DECIMALS``). Stability Pool reward ratios are scaled by 10^18
(``PRECISION``). Stored amounts must fit in 64 bits; intermediate products are
allowed 128 bits. Any result outside ``[0, limit]`` raises ``ArithmeticFault``.
"""

from protocol_errors import ArithmeticFault, InvalidArgumentError

DECIMALS = 1_000_000_000  # 9 decimals
PRECISION = 1_000_000_000_000_000_000  # 18 decimals for reward ratios

UINT64_MAX = 2**64 - 1
UINT128_MAX = 2**128 - 1

# Stored amounts (collateral, debt, deposits, balances)
AMOUNT_MAX = UINT64_MAX


def require_amount(value, name: str = "Amount") -> int:
    """
    Validate that ``value`` is a non-negative integer amount.

    Args:
        value: Candidate amount
        name: Label used in the error message

    Returns:
        The amount, unchanged

    Raises:
        InvalidArgumentError: If the value is not an int, is a bool, is negative
            or does not fit in a stored amount
    """
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidArgumentError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise InvalidArgumentError(f"{name} must not be negative")
    if value > AMOUNT_MAX:
        raise InvalidArgumentError(f"{name} exceeds the maximum amount")
    return value


def require_positive(value, name: str = "Amount") -> int:
    """Validate that ``value`` is a strictly positive integer amount."""
    require_amount(value, name)
    if value == 0:
        raise InvalidArgumentError(f"{name} must be positive")
    return value


def checked_add(a: int, b: int, limit: int = UINT128_MAX) -> int:
    """Add with overflow checking"""
    result = a + b
    if result > limit:
        raise ArithmeticFault("Arithmetic overflow in addition")
    return result


def checked_sub(a: int, b: int) -> int:
    """Subtract with underflow checking"""
    if b > a:
        raise ArithmeticFault("Arithmetic underflow in subtraction")
    return a - b


def checked_mul(a: int, b: int, limit: int = UINT128_MAX) -> int:
    """Multiply with overflow checking"""
    result = a * b
    if result > limit:
        raise ArithmeticFault("Arithmetic overflow in multiplication")
    return result


def checked_div(a: int, b: int) -> int:
    """Floor division with division-by-zero checking"""
    if b == 0:
        raise ArithmeticFault("Division by zero")
    return a // b


def mul_div(a: int, b: int, denominator: int) -> int:
    """Return ``a * b // denominator`` with the product checked against 128 bits."""
    return checked_div(checked_mul(a, b), denominator)


def add_amount(a: int, b: int) -> int:
    """Add two stored amounts; the result must still fit in 64 bits."""
    return checked_add(a, b, AMOUNT_MAX)


def collateral_value(collateral: int, price: int) -> int:
    """Value of ``collateral`` in debt units at ``price``."""
    return mul_div(collateral, price, DECIMALS)


def collateral_ratio(collateral: int, debt: int, price: int) -> int:
    """
    Collateral ratio as an integer percentage.

    The collateral value is floored to whole debt units before the percentage
    is taken, so a trove at exactly 150% reports 150.

    Args:
        collateral: Collateral amount
        debt: Debt amount, must be positive
        price: Collateral price in debt units

    Returns:
        ``collateral * price // DECIMALS * 100 // debt``
    """
    return checked_div(checked_mul(collateral_value(collateral, price), 100), debt)
