from fastapi import Request

from usage_tracker.service import UsageService


def get_usage_service(request: Request) -> UsageService:
    """The service instance created for this app (see usage_tracker.main.build_app)."""
    return request.app.state.usage_service
