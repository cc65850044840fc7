"""
Sale eligibility checks for restricted departments.

A department may carry a minimum customer age and/or a time-of-day window
during which its items cannot be sold. Hours are 0-23 in the business's local
time; the window is half-open and may wrap past midnight.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .validation import TimeRestricted, ValidationError


@dataclass(frozen=True)
class TimeRestriction:
    start: int
    end: int

    def __post_init__(self):
        for name in ("start", "end"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 23:
                raise ValidationError(f"time restriction {name} must be an hour between 0 and 23")

    @property
    def wraps_midnight(self) -> bool:
        return self.start > self.end

    @property
    def display(self) -> str:
        return f"{_format_hour(self.start)} - {_format_hour(self.end)}"

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end}


def _format_hour(hour: int) -> str:
    if hour == 0:
        return "12 AM"
    if hour < 12:
        return f"{hour} AM"
    if hour == 12:
        return "12 PM"
    return f"{hour - 12} PM"


def is_age_restricted(department) -> Optional[int]:
    """Minimum customer age for the department, or None."""
    age = getattr(department, "age_restriction", None)
    return age or None


def is_sale_allowed_now(restriction: Optional[TimeRestriction], now: datetime) -> bool:
    if restriction is None:
        return True
    hour = now.hour
    if restriction.start <= restriction.end:
        # Restricted window is [start, end)
        return hour < restriction.start or hour >= restriction.end
    # Wraps midnight: restricted window is [start, 24) + [0, end)
    return hour >= restriction.end and hour < restriction.start


def check_sale_allowed(department, now: datetime) -> None:
    """Raise TimeRestricted if the department's items cannot be sold at `now`."""
    restriction = department.time_restriction
    if is_sale_allowed_now(restriction, now):
        return
    raise TimeRestricted(
        f"This product cannot be sold between {restriction.display}",
        {"restriction": restriction.to_dict(), "department_id": department.id},
    )
