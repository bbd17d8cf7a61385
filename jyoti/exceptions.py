"""Exception hierarchy for the Guru gateway.

Every error carries a caller-safe message plus a ``details`` dictionary that
is only ever logged server-side. The HTTP layer maps each family onto a
status code; see ``jyoti.api.app``.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "ClassificationRejectedError",
    "GenerationError",
    "GuruError",
    "InvalidModeError",
    "RequestValidationError",
    "RetrievalError",
]


class GuruError(Exception):
    """Base exception for all gateway errors."""

    error_code = "guru_error"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize gateway error.

        Args:
            message: Caller-safe error message
            details: Additional error details (server-side only)
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary.

        Returns:
            Error dictionary with code, message and details
        """
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class RequestValidationError(GuruError):
    """Request body failed schema validation."""

    error_code = "validation_error"
    status_code = 400


class InvalidModeError(RequestValidationError):
    """Knowledge mode is not one of the closed set of modes."""

    error_code = "invalid_mode"

    def __init__(self, mode: str, valid_modes: list[str]):
        super().__init__(
            f"Unknown mode '{mode}'. Valid modes: {', '.join(valid_modes)}",
            {"mode": mode},
        )
        self.mode = mode


class ClassificationRejectedError(GuruError):
    """Input classified as suspicious or automated.

    The specific reason stays in ``details``; callers only see the generic
    message.
    """

    error_code = "classification_rejected"
    status_code = 400

    def __init__(
        self,
        message: str,
        reason: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, {"reason": reason, **(details or {})})
        self.reason = reason
        self.status_code = status_code


class RetrievalError(GuruError):
    """Embedding or vector store call failed.

    Never surfaces to callers: the retriever turns it into a degraded result.
    """

    error_code = "retrieval_error"


class GenerationError(GuruError):
    """Generation provider failed or returned an unusable payload."""

    error_code = "generation_error"
