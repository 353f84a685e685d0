from typing import Optional


class ChatError(Exception):
    """Base class for errors surfaced to API callers as structured failures."""

    status_code = 400
    code = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message}


class NotFoundError(ChatError):
    status_code = 404
    code = "not-found"


class ForbiddenError(ChatError):
    status_code = 403
    code = "forbidden"


class RoomFullError(ChatError):
    status_code = 409
    code = "room-full"


class RateLimitedError(ChatError):
    status_code = 429
    code = "rate-limited"

    def __init__(self, message: str = "", reset_at: Optional[float] = None):
        super().__init__(message)
        self.reset_at = reset_at

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["resetAt"] = self.reset_at
        return data


class InvalidCredentialError(ChatError):
    status_code = 401
    code = "invalid-credential"


class InputValidationError(ChatError):
    status_code = 422
    code = "validation-error"


class StoreUnavailableError(ChatError):
    """The shared store could not be reached; the operation is rejected."""

    status_code = 503
    code = "store-unavailable"
