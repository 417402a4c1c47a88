"""Generic response models for consistent API responses."""

from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from synergy_backend.config.settings import settings

T = TypeVar("T")


class ResponseMetadata(BaseModel):
    """Metadata included in all API responses."""

    app_name: str = Field(default=settings.APP_NAME)
    app_version: str = Field(default=settings.APP_VERSION)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {
        "json_schema_extra": {
            "example": {
                "app_name": "NFT Synergy Backend",
                "app_version": "1.0.0",
                "timestamp": "2025-06-01T12:00:00Z",
            }
        }
    }


class SuccessResponse(BaseModel, Generic[T]):
    """Generic success response with data and metadata."""

    success: bool = Field(default=True)
    message: str = Field(default="Operation completed successfully")
    data: T
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)


class ErrorResponse(BaseModel):
    """Standard error response structure."""

    success: bool = Field(default=False)
    error: str
    detail: Optional[str] = None
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": False,
                "error": "Source data unavailable",
                "detail": "Missing source data nft_data/attributes_power_data.json: file not found",
                "metadata": {
                    "app_name": "NFT Synergy Backend",
                    "app_version": "1.0.0",
                    "timestamp": "2025-06-01T12:00:00Z",
                },
            }
        }
    }


def success_response(
    data: T,
    message: str = "Operation completed successfully",
    **kwargs: Any
) -> SuccessResponse[T]:
    """Create a success response."""
    return SuccessResponse(
        success=True,
        message=message,
        data=data,
        metadata=ResponseMetadata(**kwargs) if kwargs else ResponseMetadata()
    )


def error_response(
    error: str,
    detail: Optional[str] = None,
    **kwargs: Any
) -> ErrorResponse:
    """Create an error response."""
    return ErrorResponse(
        success=False,
        error=error,
        detail=detail,
        metadata=ResponseMetadata(**kwargs) if kwargs else ResponseMetadata()
    )
