"""
Domain error taxonomy.

Services raise these; the API layer renders them as structured JSON
errors with a stable machine-readable code. None of them is fatal to the
process and none leaves partial state behind.
"""


class SendixError(Exception):
    """Base class for recoverable domain errors."""

    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"detail": self.message, "error": self.code}


class NotFound(SendixError):
    """Referenced entity does not exist."""

    status_code = 404
    code = "not_found"


class Forbidden(SendixError):
    """Caller is not allowed to perform this operation."""

    status_code = 403
    code = "forbidden"


class InvalidTransition(SendixError):
    """Requested state change is not reachable from the current state."""

    status_code = 400
    code = "invalid_transition"


class InvalidReference(SendixError):
    """Reference points outside the allowed scope."""

    status_code = 400
    code = "invalid_reference"


class ValidationFailed(SendixError):
    """Malformed input."""

    status_code = 400
    code = "validation"


class EmptyMessage(ValidationFailed):
    """Message text is empty."""


class ThreadDisabled(SendixError):
    """Chat is not available until the proposal is approved."""

    status_code = 409
    code = "thread_disabled"
