"""
API envelope models: error bodies and the health check.
Catalog request and response schemas live in ``catalog.schemas``.
"""

from datetime import datetime

from pydantic import Field

from catalog.schemas import CamelModel


class ErrorMessage(CamelModel):
    """Error response model."""
    status: str = Field("error", description="Always 'error'")
    message: str = Field(..., description="Error message")


class HealthResponse(CamelModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
