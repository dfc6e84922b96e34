"""Health check schemas."""

from typing import Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: Literal["healthy", "degraded"] = Field(..., description="Health status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Environment name")
    collection: str = Field(..., description="Vector collection name")
    indexed_records: int | None = Field(
        None, description="Number of indexed records, or null when the index is unreachable"
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "status": "healthy",
                    "version": "0.1.0",
                    "environment": "development",
                    "collection": "images",
                    "indexed_records": 1200,
                }
            ]
        }
    }
