"""API response schemas."""

from typing import Optional

from pydantic import BaseModel


# Error responses
class ErrorDetail(BaseModel):
    """Error detail."""

    code: str
    message: str
    field: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error response."""

    error: ErrorDetail
    external_url: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
