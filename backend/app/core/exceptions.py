"""Domain errors raised by the onboarding services.

Routers translate these into HTTP responses; services never raise HTTPException.
"""


class OnboardingError(Exception):
    """Base class for onboarding domain errors."""


class NotFoundError(OnboardingError):
    """Raised when a session, path or step does not exist."""


class ValidationError(OnboardingError):
    """Raised when a request cannot be satisfied for the given context or state."""

    def __init__(self, message: str, issues: list[str] | None = None):
        super().__init__(message)
        self.issues = issues or []


class DatabaseError(OnboardingError):
    """Raised when the storage layer fails. Names the failed operation."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation
