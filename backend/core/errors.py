"""Error taxonomy shared by the HTTP and WebSocket boundaries"""

from fastapi import status


class QuizError(Exception):
    """
    Base class for expected failures.

    Carries the message key (resolved to a localized text at the boundary)
    and the HTTP status used when the failure reaches a REST client.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"

    def __init__(self, message_key: str, detail: str = None):
        super().__init__(detail or message_key)
        self.message_key = message_key
        self.detail = detail


class ValidationError(QuizError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation"


class UnauthorizedError(QuizError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"


class NotFoundError(QuizError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(QuizError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class InvalidStateError(QuizError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state"


class PersistenceError(QuizError):
    """Storage-layer failure; the original exception is kept as __cause__"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "persistence"
