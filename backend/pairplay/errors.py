"""Error taxonomy shared by services and HTTP handlers.

Services raise these; the app factory registers a single handler that
renders them as ``{"error": message}`` with the matching status code.
"""


class PairPlayError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {'error': self.message}


class ValidationError(PairPlayError):
    """Malformed input. The caller must correct it."""
    status_code = 400


class AuthenticationError(PairPlayError):
    status_code = 401


class AuthorizationError(PairPlayError):
    """Caller is not a party to the resource."""
    status_code = 403


class NotFoundError(PairPlayError):
    status_code = 404


class StateConflictError(PairPlayError):
    """Action is invalid in the resource's current lifecycle state."""
    status_code = 400


class DuplicateRequestError(StateConflictError):
    status_code = 409


class StorageConflictError(PairPlayError):
    """A concurrent write won the race at the storage layer.

    Safe to retry the whole operation once after re-reading state.
    """
    status_code = 409

    def to_dict(self) -> dict:
        return {'error': self.message, 'retryable': True}


class RateLimitError(PairPlayError):
    status_code = 429


class DependencyError(PairPlayError):
    status_code = 502


class DeliveryError(DependencyError):
    """Email could not be handed to the provider."""
