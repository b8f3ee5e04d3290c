"""Shared Pydantic schemas for common API elements."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model exchanging camelCase JSON while keeping snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Pagination(CamelModel):
    """Offset pagination metadata returned by list endpoints."""

    limit: int
    offset: int
    total: int
    has_more: bool = Field(..., description="True when another page may exist.")


class ErrorResponse(BaseModel):
    """Shape of every error body rendered by the API."""

    error: str
    code: str
