"""Service layer: business rules over the DAOs."""


class ServiceError(Exception):
    """Base service exception."""


class NotFoundError(ServiceError):
    """Resource not found (-> HTTP 404)."""


class ConflictError(ServiceError):
    """Business rule conflict (-> HTTP 409)."""


class ValidationError(ServiceError):
    """Input validation or state transition error (-> HTTP 422)."""


class RepositoryBusyError(ConflictError):
    """Another run already owns the repository."""


class InvalidTransitionError(ValidationError):
    """Requested status change is not in the transition table."""
