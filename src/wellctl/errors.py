__all__ = [
    "WellControlError",
    "ValidationError",
    "UnsupportedLimitError",
    "UnknownWellError",
    "SolverError",
    "ComputationError",
]


class WellControlError(Exception):
    """Base class for all well control errors."""

    pass


class ValidationError(WellControlError, ValueError):
    """Raised when input data fails validation checks."""

    pass


class UnsupportedLimitError(ValidationError):
    """Raised when a limit kind is not supported for the role of a well control."""

    pass


class UnknownWellError(WellControlError, KeyError):
    """Raised when a well is referenced that is not part of the well group."""

    pass


class SolverError(WellControlError):
    """Raised when a linear solver fails for a restricted well system."""

    pass


class ComputationError(WellControlError):
    """Raised when there is an error during numerical computations."""

    pass
