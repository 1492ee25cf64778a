"""
Typed errors raised by the job lifecycle core.

Each error carries the HTTP status it maps to; the API layer renders them
through a single exception handler.
"""


class ShopfloorError(Exception):
    status_code = 400
    kind = "error"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.kind)
        self.detail = detail or self.kind

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.detail}


class ValidationError(ShopfloorError):
    status_code = 422
    kind = "validation_error"


class NotFoundError(ShopfloorError):
    status_code = 404
    kind = "not_found"


class ForbiddenError(ShopfloorError):
    status_code = 403
    kind = "forbidden"


class ConflictError(ShopfloorError):
    status_code = 409
    kind = "conflict"


class InvalidStateError(ShopfloorError):
    status_code = 409
    kind = "invalid_state"


class InvalidTransitionError(InvalidStateError):
    kind = "invalid_transition"
