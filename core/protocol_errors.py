"""
Error types for the Trove Ledger model.

Every failure aborts the call that raised it. Precondition, authorization and
invariant failures are raised before any state is touched; arithmetic faults
signal an unsigned overflow or underflow and are never saturated or wrapped.
"""


class ProtocolError(Exception):
    """Base error class for protocol errors"""
    pass


class InvalidArgumentError(ProtocolError, ValueError):
    """Invalid argument: zero amount, rate out of bounds, debt below minimum"""
    pass


class UnauthorizedError(ProtocolError, PermissionError):
    """Caller is not the owner, minter, feeder or trove manager"""
    pass


class InvariantError(ProtocolError, ValueError):
    """Operation would leave the ledger in a forbidden state"""
    pass


class CollateralRatioError(InvariantError):
    """Operation would leave a trove below the minimum collateral ratio"""
    pass


class InsufficientBalanceError(InvariantError):
    """Insufficient balance, allowance, collateral or deposit"""
    pass


class TroveStateError(InvariantError):
    """Trove is missing, already open, still indebted or not liquidatable"""
    pass


class StalePriceError(ProtocolError):
    """Price feed has not been updated within the staleness window"""
    pass


class PriceDeviationError(InvalidArgumentError):
    """Price update deviates too far from the TWAP"""
    pass


class ArithmeticFault(ProtocolError, ArithmeticError):
    """Unsigned overflow, underflow or division by zero"""
    pass


class ConfigError(ProtocolError, ValueError):
    """Inconsistent protocol configuration"""
    pass
