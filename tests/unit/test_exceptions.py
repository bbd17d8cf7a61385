"""Tests for the gateway exception hierarchy."""

from __future__ import annotations

from jyoti.exceptions import (
    ClassificationRejectedError,
    GenerationError,
    GuruError,
    InvalidModeError,
    RequestValidationError,
    RetrievalError,
)


class TestGuruErrors:
    def test_to_dict(self) -> None:
        error = RequestValidationError("message: Field required", details={"field": "message"})

        assert error.status_code == 400
        assert error.to_dict() == {
            "error": "validation_error",
            "message": "message: Field required",
            "details": {"field": "message"},
        }

    def test_invalid_mode(self) -> None:
        error = InvalidModeError("tarot", ["general", "career"])

        assert isinstance(error, RequestValidationError)
        assert error.status_code == 400
        assert error.message == "Unknown mode 'tarot'. Valid modes: general, career"
        assert error.details == {"mode": "tarot"}

    def test_classification_rejected_status(self) -> None:
        error = ClassificationRejectedError("Slow down", reason="burst", status_code=429)

        assert error.status_code == 429
        assert error.reason == "burst"

    def test_internal_errors_default_to_500(self) -> None:
        assert RetrievalError("store down").status_code == 500
        assert GenerationError("provider down").status_code == 500
        assert isinstance(GenerationError("x"), GuruError)
