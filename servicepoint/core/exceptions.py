# servicepoint/core/exceptions.py
from typing import Optional


class ServicePointError(Exception):
    """Base class for errors that map onto an HTTP error envelope."""

    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, error: Optional[str] = None):
        self.message = message or self.default_message
        self.error = error
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message}
        if self.error:
            body["error"] = self.error
        return body


class NotFound(ServicePointError):
    status_code = 404
    default_message = "Resource not found"


class Conflict(ServicePointError):
    status_code = 400
    default_message = "Resource already exists"


class Forbidden(ServicePointError):
    status_code = 403
    default_message = "Access denied. Insufficient permissions."


class AuthenticationError(ServicePointError):
    status_code = 401
    default_message = "Invalid token"

    def __init__(
        self,
        message: Optional[str] = None,
        error: Optional[str] = None,
        requires_login: bool = False,
        session_expired: bool = False,
    ):
        super().__init__(message, error)
        self.requires_login = requires_login
        self.session_expired = session_expired

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["requires_login"] = self.requires_login
        body["session_expired"] = self.session_expired
        return body


class BookingValidationError(ServicePointError):
    status_code = 400


class InvalidTransition(ServicePointError):
    status_code = 400

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot change status from {current} to {target}", error="InvalidTransition")


class FeedbackAlreadySubmitted(ServicePointError):
    status_code = 400
    default_message = "Feedback already submitted for this booking"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, error="FeedbackAlreadySubmitted")


class RateLimitExceeded(ServicePointError):
    status_code = 429
    default_message = "Too many requests. Please try again later."

    def __init__(self, retry_after: int):
        super().__init__()
        self.retry_after = retry_after

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retry_after"] = self.retry_after
        return body


# token verification failures; the message doubles as the surfaced reason

class TokenError(Exception):
    default_message = "Invalid token"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class TokenExpired(TokenError):
    default_message = "Token has expired. Please log in again."


class TokenMalformed(TokenError):
    default_message = "Invalid token format"


class TokenNotYetValid(TokenError):
    default_message = "Token not yet valid"
