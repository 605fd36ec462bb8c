"""Custom exception classes for the Beacon services."""


class BeaconError(Exception):
    """Base exception for all Beacon errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(self.message)


class AuthenticationError(BeaconError):
    """Raised when authentication fails."""

    pass


class NotFoundError(BeaconError):
    """Raised when a requested record does not exist."""

    pass


class UserNotFoundError(NotFoundError):
    """Raised when a user is not found."""

    pass


class ProjectNotFoundError(NotFoundError):
    """Raised when a monitoring project is not found."""

    pass


class DuplicateError(BeaconError):
    """Raised when a unique attribute is already taken."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: str | None = None,
    ):
        self.field = field
        super().__init__(message, details)


class DuplicateUserError(DuplicateError):
    """Raised when attempting to create a user that already exists."""

    pass


class DuplicateCompanyError(DuplicateError):
    """Raised when a company name is already taken."""

    pass


class MainAppError(BeaconError):
    """Raised when communication with the main application API fails."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: str | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, details)


class AIProviderError(BeaconError):
    """Raised when the AI provider is misconfigured or a call fails."""

    pass


class AIResponseParseError(AIProviderError):
    """Raised when a model response cannot be parsed into JSON."""

    pass


class EmbeddingError(AIProviderError):
    """Raised when embedding generation fails."""

    pass


class RabbitMQError(BeaconError):
    """Raised when RabbitMQ operations fail."""

    pass
