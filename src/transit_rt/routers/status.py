"""Feed run status endpoint."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from transit_rt.services.ingest.worker import get_orchestrator

router = APIRouter(prefix="/v1", tags=["status"])


class SourceRunStatus(BaseModel):
    """Outcome of the last successful cycle of one region."""

    updated: Optional[str] = None
    newItemCount: int = 0  # noqa: N815


class StatusResponse(BaseModel):
    """Response for /v1/status."""

    tripUpdates: List[Dict[str, SourceRunStatus]] = Field(default_factory=list)  # noqa: N815
    alerts: List[Dict[str, SourceRunStatus]] = Field(default_factory=list)


@router.get(
    "/status",
    response_model=StatusResponse,
    summary="Get last run status per region",
)
async def get_status() -> dict[str, Any]:
    """Return the last update time and new item count of every polled region."""
    return get_orchestrator().status.snapshot()
