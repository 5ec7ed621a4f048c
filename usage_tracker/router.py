# usage_tracker/router.py
# Tracking / query routes. Thin: all validation lives in UsageService.
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from usage_tracker.deps import get_usage_service
from usage_tracker.errors import UsageValidationError
from usage_tracker.models import EntityStats, ServiceStatus, TrackRequest, TrackResponse
from usage_tracker.service import UsageService

router = APIRouter(tags=["usage"])

Service = Annotated[UsageService, Depends(get_usage_service)]


@router.post("/track", response_model=TrackResponse)
def track(payload: TrackRequest, service: Service):
    try:
        service.track(
            entity_id=payload.entityId,
            time_increment_ms=payload.timeIncrementMs,
            message_increment=payload.messageIncrement,
            word_increment=payload.wordIncrement,
            is_user=payload.isUser,
        )
    except UsageValidationError as e:
        raise HTTPException(status_code=400, detail=e.to_dict()) from e
    return TrackResponse(success=True)


@router.get("/stats", response_model=dict[str, EntityStats])
def stats(
    service: Service,
    date: str | None = Query(None, description="Day as YYYY-MM-DD (UTC+8); defaults to today"),
):
    try:
        return service.query(date)
    except UsageValidationError as e:
        raise HTTPException(status_code=400, detail=e.to_dict()) from e


@router.get("/status", response_model=ServiceStatus)
def service_status(service: Service):
    """Cache and flush state since process start."""
    return service.status()
