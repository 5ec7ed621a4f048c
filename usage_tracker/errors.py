# usage_tracker/errors.py
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ValidationReason(str, Enum):
    # Tracking input
    MISSING_FIELD = "missing_field"
    NO_TRACKING_DATA = "no_tracking_data"

    # Query input
    INVALID_FORMAT = "invalid_format"
    FUTURE_DATE = "future_date"


@dataclass(eq=False)
class UsageValidationError(Exception):
    """Rejected caller input. Nothing was mutated when this is raised."""

    reason: ValidationReason
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.reason.value,
            "message": self.message,
            "details": self.details or {},
        }
