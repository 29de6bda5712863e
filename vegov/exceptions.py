"""
Vegov Exceptions

Error taxonomy for the governance engine. Every error aborts the operation
that raised it and the engine discards all of that operation's writes.
"""


class VegovException(Exception):
    """Base exception for vegov."""
    kind = "internal"


class ValidationError(VegovException):
    """Request is malformed or not allowed in the current state."""
    kind = "validation"


class FundsNotAllowedError(ValidationError):
    """Funds were attached to an operation that does not take any."""

    def __init__(self, message: str = "Funds not allowed"):
        super().__init__(message)


class InsufficientFundsError(ValidationError):
    """Attached funds are below the required amount."""


class NotFoundError(VegovException):
    """Referenced entry, proposal, app or delegation does not exist."""
    kind = "not_found"


class UnauthorizedError(VegovException):
    """Caller is not permitted to perform the operation."""
    kind = "unauthorized"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ArithmeticConsistencyError(VegovException):
    """A recorded total would underflow or otherwise become inconsistent."""
    kind = "arithmetic"


class ConfigurationError(VegovException):
    """Configuration error."""
    kind = "configuration"
