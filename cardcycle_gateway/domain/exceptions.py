"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Account identifiers or credentials are missing or malformed"""

    pass


class AccountNotFoundError(ValidationError):
    """No credit account exists for the given identifier"""

    pass


class UpstreamFetchError(DomainException):
    """Aggregator returned an error or is unavailable"""

    def __init__(self, message: str, error_code: str = "UPSTREAM_ERROR"):
        super().__init__(message)
        self.error_code = error_code


class DataIntegrityError(DomainException):
    """Persisted record is missing a field the engine depends on"""

    pass
