# FILE: pharmacy_pos/core/errors.py
from __future__ import annotations

from typing import Optional


class PosError(Exception):
    """Base for business-rule failures. Raised by services, rendered by api.exception_handlers."""
    kind = "POS_ERROR"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(PosError):
    kind = "NOT_FOUND"
    status_code = 404


class InvalidInput(PosError):
    kind = "INVALID_INPUT"
    status_code = 400


class InsufficientStock(PosError):
    kind = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, message: str, *, available: Optional[int] = None, required: Optional[int] = None):
        super().__init__(message)
        self.available = available
        self.required = required


class Conflict(PosError):
    kind = "CONFLICT"
    status_code = 409


class StateInvariantViolation(PosError):
    kind = "STATE_INVARIANT_VIOLATION"
    status_code = 500
