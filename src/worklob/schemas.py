"""Shared pydantic bases for request/response bodies.

Clients send and receive camelCase keys; Python code uses snake_case.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PaginationInfo(CamelModel):
    """Offset pagination envelope."""

    page: int
    limit: int
    total: int
    pages: int


class SuccessResponse(CamelModel):
    """Bare acknowledgement."""

    success: bool = True
    message: str | None = None
