from __future__ import annotations

from typing import Optional


class TaskboardError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"message": self.message}


class ValidationError(TaskboardError):
    """A required field is missing or a value is not acceptable."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", errors: Optional[list[dict]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.errors:
            body["errors"] = self.errors
        return body


class NotFoundError(TaskboardError):
    """The resource is absent or not owned by the caller.

    Both cases produce the same response so ownership of a record is never
    revealed to other users.
    """

    status_code = 404

    def __init__(self, kind: str) -> None:
        super().__init__(f"{kind} not found")
        self.kind = kind


class StoreError(TaskboardError):
    status_code = 500

    def __init__(self, cause: BaseException) -> None:
        super().__init__("Server error")
        self.cause = cause

    def to_dict(self) -> dict:
        return {"message": self.message, "error": str(self.cause)}
