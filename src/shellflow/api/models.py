"""Response models for the REST API."""

from pydantic import BaseModel, ConfigDict


class ActionResponse(BaseModel):
    """Response to a start, stop or reset request."""

    model_config = ConfigDict(frozen=True)

    status: str


class ErrorResponse(BaseModel):
    """Error response."""

    model_config = ConfigDict(frozen=True)

    detail: str


class HealthResponse(BaseModel):
    """Health check response."""

    model_config = ConfigDict(frozen=True)

    status: str
    running: bool
    finished: bool
