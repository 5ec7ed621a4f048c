# usage_tracker/ops.py
"""
Ops endpoints for liveness/readiness.

- /live  : returns 200 while the process is alive
- /ready : returns 200 only while the usage service is started and its flush
           loop is running; 503 before startup and once shutdown begins

app.state.is_ready is managed by the lifespan in usage_tracker.main.
"""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

router = APIRouter(tags=["ops"])


@router.get("/live")
async def live() -> dict:
    return {"status": "live"}


@router.get("/ready")
def ready(request: Request):
    # Ready means started and still flushing; a stopped flush loop means
    # increments would only live in memory.
    is_ready = getattr(request.app.state, "is_ready", False)
    service = getattr(request.app.state, "usage_service", None)
    flush_running = bool(service and service.scheduler.running)
    body = {
        "status": "ready" if is_ready and flush_running else "not_ready",
        "flush_running": flush_running,
        "dirty_days": len(service.cache.dirty_days()) if service else 0,
    }
    if body["status"] == "ready":
        return body
    return JSONResponse(body, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
