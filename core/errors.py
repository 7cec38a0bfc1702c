from __future__ import annotations

from enum import Enum


class PuzzleError(Exception):
    """Base class for errors raised by the puzzle core."""


class ImageDecodeError(PuzzleError):
    """Raster data could not be decoded into an image."""


class ErrorCategory(str, Enum):
    INVALID_CREDENTIAL = "invalid_credential"
    PERMISSION_DENIED = "permission_denied"
    RATE_LIMITED = "rate_limited"
    SAFETY_REJECTED = "safety_rejected"
    NETWORK = "network"
    MISSING_KEY = "missing_key"
    EMPTY_RESPONSE = "empty_response"
    UNKNOWN = "unknown"


class GenerationError(PuzzleError):
    """Image provider call failed. Always retryable from the input stage."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN, status_code: int | None = None):
        super().__init__(message)
        self.category = category
        self.status_code = status_code
