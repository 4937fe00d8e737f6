"""Exception hierarchy for the ROI driver engine.

All engine exceptions inherit from RoiDriversError so callers can handle
them in one place. Input problems also subclass ValueError and lookup
failures KeyError, so plain ``except ValueError`` handlers keep working.
"""


class RoiDriversError(Exception):
    """Base exception for all ROI driver errors."""

    pass


# =============================================================================
# Input Exceptions
# =============================================================================


class InvalidInputError(RoiDriversError, ValueError):
    """Raised when period records are missing, empty, or malformed."""

    pass


class UnknownFactorError(InvalidInputError):
    """Raised when a requested factor is not an available column."""

    def __init__(self, invalid_factors, available_factors):
        self.invalid_factors = list(invalid_factors)
        self.available_factors = list(available_factors)
        super().__init__(
            f"The following factors are not available: {', '.join(map(str, self.invalid_factors))}"
        )


# =============================================================================
# Session Exceptions
# =============================================================================


class SessionNotFoundError(RoiDriversError, KeyError):
    """Raised when a session id is not registered."""

    pass


class AnalysisNotFoundError(RoiDriversError, KeyError):
    """Raised when an analysis id is not stored in a session."""

    pass
