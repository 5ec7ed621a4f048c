from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from usage_tracker.config import Settings
from usage_tracker.service import UsageService


class Clock:
    """Settable clock; starts at 2024-05-10 12:00 UTC (20:00 in UTC+8)."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2024, 5, 10, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(data_dir=tmp_path / "usage", flush_interval_seconds=3600)


@pytest.fixture
def service(settings, clock) -> UsageService:
    return UsageService(settings, clock=clock)
