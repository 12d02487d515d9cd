"""Error envelope schemas shared across API handlers."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class ValidationError(BaseModel):
    """Single field-level validation failure."""

    field: str
    message: str


class ValidationErrors(BaseModel):
    """Meta payload attached to validation failures."""

    errors: list[ValidationError]


class ErrorObject(BaseModel):
    """Canonical error payload object."""

    id: str
    message: str
    context: Any | None = None


class ErrorResponse(BaseModel):
    """Nested error envelope: the error object plus optional meta."""

    error: ErrorObject
    meta: dict[str, Any] | None = None


class FlatErrorResponse(BaseModel):
    """Flat error envelope with meta and context beside the id."""

    id: str
    message: str
    meta: dict[str, Any] | None = None
    context: Any | None = None
