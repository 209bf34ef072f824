from __future__ import annotations

from typing import Any


class ApiError(Exception):
    """Failure that maps to an HTTP status and a ``{"error": ...}`` body.

    ``extra`` is merged into the body next to ``error`` and may itself carry a
    ``message`` key.
    """

    def __init__(self, status_code: int, message: str, /, **extra: Any):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, **self.extra}


class NotFoundError(ApiError):
    def __init__(self, message: str = "Not found", **extra: Any):
        super().__init__(404, message, **extra)


class UnauthorizedError(ApiError):
    def __init__(self, message: str = "Unauthorized", **extra: Any):
        super().__init__(401, message, **extra)
