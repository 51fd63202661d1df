"""
Data models for the query layer.

- Query: one incoming request (question text plus per-request switches)
- Response: the structured answer returned to callers
- ResponseType: values of ``Response.type``
- LLMError / ResponseDecodeError: generative-model failures
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class ResponseType:
    """Values carried in ``Response.type``."""

    FINAL = "FINAL"


class Query(BaseModel):
    """A single question, immutable for the lifetime of the request."""

    text: str = Field(description="Natural-language question")
    use_cache: bool = Field(
        default=True,
        description="Consult the semantic cache first and allow writing the answer back",
    )
    want_details: bool = Field(
        default=False,
        description="Return the full structured response instead of the answer text",
    )

    model_config = ConfigDict(frozen=True)


class Response(BaseModel):
    """
    Structured answer.

    This is also the JSON object the model is instructed to emit, so unknown
    keys are ignored and every field has a default. An explicit ``null`` is
    read as the default too.
    """

    type: str = Field(default=ResponseType.FINAL, description="Response kind, FINAL for answers")
    response: str = Field(default="", description="Answer text")
    tool: str = Field(default="", description="Tool the model suggested, if any")
    params: dict[str, str] = Field(default_factory=dict, description="Tool parameters")
    confidence: float = Field(default=0.0, description="Model's self-reported confidence")

    model_config = ConfigDict(extra="ignore")

    @field_validator("type", "response", "tool", "params", "confidence", mode="before")
    @classmethod
    def _null_as_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return value


class LLMError(Exception):
    """Raised when the generative model call fails."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class ResponseDecodeError(LLMError):
    """Raised when a completion is not the JSON shape we asked for."""

    def __init__(self, message: str, raw: str, cause: Exception | None = None):
        super().__init__(message, cause=cause)
        self.raw = raw
