"""Health check schemas."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    wallet: str


class ReadyResponse(BaseModel):
    status: str
    wallet: str
    dependencies: dict[str, bool] = Field(default_factory=dict)
