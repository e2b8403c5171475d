"""
Common schema types used across the kernel HTTP surface.
"""

from typing import List

from pydantic import BaseModel, Field


class ValidationFieldError(BaseModel):
    """One failed field rule."""

    field: str
    tag: str
    value: str = ""
    message: str


class ValidationResponse(BaseModel):
    """Aggregated field failures for a rejected request."""

    errors: List[ValidationFieldError] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """
    Standard JSON error envelope.

    Every JSON error body has this shape; `errors` is only filled for
    validation failures.
    """

    status: int
    message: str
    errors: List[ValidationFieldError] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
