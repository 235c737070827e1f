"""Domain semantic exceptions."""


class DomainError(Exception):
    """Base domain exception."""


class InvalidInput(DomainError):
    """Raised when query coordinates are missing, malformed or out of range."""


class NoResult(DomainError):
    """Raised when neither the caches nor the provider produced any payload."""
