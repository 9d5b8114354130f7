from typing import Optional


class AppError(ValueError):
    """Business-rule failure that callers surface to the client as-is."""

    code = "GENERAL_ERROR"
    http_status = 422
    default_message = "Request could not be processed"

    def __init__(self, detail: Optional[str] = None, message: Optional[str] = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(f"{self.message}: {detail}" if detail else self.message)

    def to_dict(self) -> dict[str, object]:
        body: dict[str, object] = {
            "message": self.message,
            "code": self.code,
            "http_code": self.http_status,
        }
        if self.detail:
            body["detail"] = self.detail
        return body


class InvalidRequest(AppError):
    code = "INVALID_REQUEST"
    http_status = 422
    default_message = "Invalid request payload"


class Unauthorized(AppError):
    code = "UNAUTHORIZED"
    http_status = 401
    default_message = "Unauthorized"


class InvalidToken(Unauthorized):
    code = "INVALID_TOKEN"
    default_message = "Invalid or expired token"


class NotFound(AppError):
    code = "NOT_FOUND"
    http_status = 404
    default_message = "Data not found"


class Conflict(AppError):
    code = "CONFLICT"
    http_status = 409
    default_message = "Data already exists"


class StoreError(RuntimeError):
    """Infrastructure failure raised by a store, tagged with the operation that hit it."""

    def __init__(self, operation: str, reason: object) -> None:
        self.operation = operation
        super().__init__(f"{operation}: {reason}")


class DeadlineExceeded(StoreError):
    pass
