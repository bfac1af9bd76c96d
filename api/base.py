"""JSON error envelope shared by every endpoint.

Errors always look like:

    {"error": {"message": "...", "code": 404, "cause": ..., "stack": "..."}}

`cause` and `stack` are only filled in outside production.
"""

from typing import Any

from pydantic import BaseModel, Field


class ErrorBody(BaseModel):
    """Error details in API response."""

    message: str = Field(..., description="Human-readable error message")
    code: int = Field(..., description="HTTP status code")
    cause: Any | None = Field(default=None, description="Underlying cause (non-production only)")
    stack: str | None = Field(default=None, description="Traceback (non-production only)")


class ErrorEnvelope(BaseModel):
    error: ErrorBody


def error_response(
    code: int,
    message: str,
    cause: Any = None,
    stack: str | None = None,
) -> dict:
    """Serialized error envelope with unset optional fields omitted."""
    return ErrorEnvelope(
        error=ErrorBody(message=message, code=code, cause=cause, stack=stack)
    ).model_dump(mode="json", exclude_none=True)
