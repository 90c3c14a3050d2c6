"""Health and diagnostics endpoints."""
from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from content_api.core.config import APP_VERSION

router = APIRouter(prefix="/v1", tags=["health"])


class ApiSummary(BaseModel):
    healthy: bool
    title: str
    message: str
    version: str


# PUBLIC_INTERFACE
@router.get("/status", response_model=ApiSummary, summary="Health Check", description="Simple health check endpoint.", operation_id="health_check")
def health_check() -> ApiSummary:
    """Return a simple health status."""
    return ApiSummary(healthy=True, title="Content API", message="ok", version=APP_VERSION)
