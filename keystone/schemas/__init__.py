"""
Pydantic schemas for the kernel HTTP surface.
"""

from keystone.schemas.common import (
    ErrorResponse,
    HealthResponse,
    ValidationFieldError,
    ValidationResponse,
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "ValidationFieldError",
    "ValidationResponse",
]
