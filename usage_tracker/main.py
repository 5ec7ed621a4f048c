from __future__ import annotations

import os
import platform
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path

from fastapi import FastAPI

from usage_tracker import ops
from usage_tracker.config import Settings, settings as default_settings
from usage_tracker.metrics import MetricsMiddleware, metrics_endpoint
from usage_tracker.observability import RequestIdMiddleware, setup_json_logging
from usage_tracker.router import router as usage_router
from usage_tracker.service import UsageService

APP_NAME = "daily-usage-tracker"
APP_DESC = "Tracks daily chat time, messages and words per character/group (Beijing time)."
APP_VERSION_FILE = Path(__file__).resolve().parents[1] / "VERSION"


def read_version_fallback() -> str:
    try:
        return APP_VERSION_FILE.read_text(encoding="utf-8").strip()
    except Exception:
        return "0.0.0"


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


# -------------------------
# Logging
# -------------------------
log = setup_json_logging("usage_tracker")


def build_app(
    settings: Settings | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    """
    Create the FastAPI app and its UsageService.

    The service is constructed here (so routes can use it right away) but only
    started/stopped by the lifespan: start prepares the data directory and the
    periodic flush, stop performs the final forced flush.
    """
    cfg = settings or default_settings
    service = UsageService(cfg, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service.start()
        app.state.is_ready = True
        log.info('startup_complete version="%s" prefix="%s"', app.version, cfg.ROUTE_PREFIX)
        try:
            yield
        finally:
            app.state.is_ready = False
            service.stop()
            log.info("shutdown_complete")

    app = FastAPI(
        title=APP_NAME,
        description=APP_DESC,
        version=read_version_fallback(),
        lifespan=lifespan,
    )
    app.state.usage_service = service
    app.state.is_ready = False

    app.add_middleware(MetricsMiddleware, skip_predicate=lambda req: req.url.path == "/metrics")
    app.add_middleware(RequestIdMiddleware, logger=log)

    # -------------------------
    # Core endpoints
    # -------------------------
    @app.get("/health", tags=["core"])
    def health():
        return {"status": "ok"}

    @app.get("/version", tags=["core"])
    def version():
        return {
            "service": APP_NAME,
            "version": read_version_fallback(),
            "host": cfg.HOST,
            "port": cfg.PORT,
            "workers": cfg.WORKERS,
        }

    @app.get("/__meta", tags=["core"])
    def meta():
        git_commit = os.getenv("GIT_COMMIT", "unknown")
        git = {
            "commit": git_commit,
            "sha": os.getenv("GIT_SHA", git_commit),
            "branch": os.getenv("GIT_BRANCH", "unknown"),
            "dirty": os.getenv("GIT_DIRTY", "unknown"),
        }
        build = {
            "time": os.getenv("BUILD_TIME", "unknown"),
            "containerized": Path("/.dockerenv").exists(),
        }
        runtime = {
            "python": platform.python_version(),
            "implementation": platform.python_implementation(),
            "platform": platform.platform(),
            "pid": os.getpid(),
            "as_of": utc_now_iso(),
        }
        endpoints = sorted(
            {getattr(r, "path", "") for r in app.routes if getattr(r, "path", "").startswith("/")}
        )
        return {
            "service": APP_NAME,
            "version": read_version_fallback(),
            "git": git,
            "build": build,
            "runtime": runtime,
            "endpoints": endpoints,
        }

    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], include_in_schema=False)
    app.include_router(ops.router)
    app.include_router(usage_router, prefix=cfg.ROUTE_PREFIX)
    return app


app = build_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=default_settings.HOST, port=default_settings.PORT)
