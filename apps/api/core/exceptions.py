"""
Custom exception classes and error handling.

Two families live here:
- APIException and friends: HTTP-facing errors with a stable error_code.
- FitnessEngineError and friends: contract violations raised by the
  fitness engine. Insufficient data is never an exception; it is reported
  through explicit empty results.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND"
        )


class ValidationError(APIException):
    """Validation error."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code
        )


class FitnessEngineError(Exception):
    """Base class for fitness engine errors."""

    error_code = "FITNESS_ENGINE_ERROR"


class InvalidEffortError(FitnessEngineError, ValueError):
    """Caller passed an impossible effort (non-positive distance or time, unknown level)."""

    error_code = "INVALID_EFFORT"


class VdotOutOfRangeError(FitnessEngineError, ValueError):
    """A fitness index fell outside the domain accepted at a storing/returning boundary."""

    error_code = "VDOT_OUT_OF_RANGE"

    def __init__(self, value: float, lower: float, upper: float):
        self.value = value
        self.lower = lower
        self.upper = upper
        super().__init__(f"VDOT {value:.2f} outside valid range [{lower:g}, {upper:g}]")
