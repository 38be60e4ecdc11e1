"""Error taxonomy shared by analyzers, services and store adapters."""


class SagaError(Exception):
    """Base class for all saga manager errors."""


class ValidationError(SagaError, ValueError):
    """Malformed input: non-positive ids, out-of-range scores, empty queries."""


class InvalidVector(ValidationError):
    """Embedding data that cannot form a vector (empty, non-finite, bad byte length)."""


class DimensionMismatch(ValidationError):
    """Two vectors of different dimension were compared."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Vector dimension mismatch: {expected} vs {actual}")


class NotFoundError(SagaError, LookupError):
    """A hard lookup found no entity, fragment or metrics row."""

    def __init__(self, kind: str, identifier: int):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class PersistenceError(SagaError):
    """Wraps an underlying storage failure with the operation that hit it."""

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        message = f"Storage failure during {operation}"
        if cause is not None:
            message += f": {cause.__class__.__name__}: {cause}"
        super().__init__(message)


class ServiceError(SagaError):
    """Embedding-generation collaborator failed."""
