"""Domain errors raised by the services layer.

Each error carries the HTTP status it maps to; ``main.py`` turns them into
``{"error": ...}`` JSON responses.
"""
from __future__ import annotations

from typing import Any, Optional


class DeskError(Exception):
    status_code: int = 500

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message, **self.extra}


class ValidationError(DeskError):
    status_code = 400


class NotFound(DeskError):
    status_code = 404


class Forbidden(DeskError):
    status_code = 403


class AlreadyProcessed(DeskError):
    status_code = 400

    def __init__(self, current_status: Optional[str]):
        super().__init__("Already processed", status=current_status)
        self.current_status = current_status


class UpstreamFailure(DeskError):
    """Rewrite or notification provider failed."""
    status_code = 500


class InternalError(DeskError):
    status_code = 500


__all__ = [
    "DeskError",
    "ValidationError",
    "NotFound",
    "Forbidden",
    "AlreadyProcessed",
    "UpstreamFailure",
    "InternalError",
]
