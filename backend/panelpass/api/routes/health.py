"""
Health check endpoint.

Not authenticated; used by the platform's liveness probe.
"""

from fastapi import APIRouter
from pydantic import BaseModel

from panelpass import __version__

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(status="ok", version=__version__)
