"""
Availability matching for providers.

Decides whether a provider is free for a candidate window given their
recurring weekly schedule and the bookings that already occupy their time.
Used when filtering search results and, authoritatively, inside the
booking-creation transaction.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time
from typing import FrozenSet, Iterable, Optional, Tuple

from django.utils import timezone

from services.exceptions import (
    InvalidTimeWindow,
    MarketplaceError,
    OutsideScheduledDays,
    OutsideWorkingHours,
    ProviderUnavailable,
    SchedulingConflict,
)

logger = logging.getLogger(__name__)

# Statuses that reserve a provider's time
OCCUPYING_STATUSES = ("pending", "confirmed", "in_progress")

WEEKDAY_NAMES = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)


@dataclass(frozen=True)
class WeeklySchedule:
    available_days: FrozenSet[str]
    start: time
    end: time


@dataclass(frozen=True)
class AvailabilityResult:
    """Outcome of a non-raising availability check (used by search)."""
    available: bool
    reason: Optional[str] = None
    message: str = ""

    def as_dict(self):
        return {"available": self.available, "reason": self.reason, "message": self.message}


def validate_window(start: datetime, end: datetime) -> None:
    if start is None or end is None:
        raise InvalidTimeWindow("Both start and end are required")
    if timezone.is_naive(start) or timezone.is_naive(end):
        raise InvalidTimeWindow("Start and end must be timezone-aware")
    if end <= start:
        raise InvalidTimeWindow("End must be after start")


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open overlap test: [a_start, a_end) and [b_start, b_end)."""
    return a_start < b_end and b_start < a_end


def check_schedule(schedule: WeeklySchedule, start: datetime, end: datetime) -> None:
    """
    Check the window against the weekly schedule in the local time zone.

    Raises:
        OutsideScheduledDays: start weekday is not an available day
        OutsideWorkingHours: [start, end) is not inside [hours.start, hours.end)
    """
    local_start = timezone.localtime(start)
    local_end = timezone.localtime(end)

    weekday = WEEKDAY_NAMES[local_start.weekday()]
    if weekday not in schedule.available_days:
        raise OutsideScheduledDays(f"Provider does not work on {weekday.capitalize()}")

    # A window spilling into the next day can never fit a same-day shift
    if local_end.date() != local_start.date():
        raise OutsideWorkingHours("Bookings must start and end on the same day")

    if local_start.time() < schedule.start or local_end.time() > schedule.end:
        raise OutsideWorkingHours(
            f"Working hours are {schedule.start:%H:%M}-{schedule.end:%H:%M}"
        )


def check_conflicts(
    start: datetime,
    end: datetime,
    occupied: Iterable[Tuple[datetime, datetime]],
) -> None:
    """Raise SchedulingConflict if any occupied interval overlaps [start, end)."""
    for busy_start, busy_end in occupied:
        if intervals_overlap(start, end, busy_start, busy_end):
            raise SchedulingConflict(
                "Provider already has a booking from "
                f"{timezone.localtime(busy_start):%Y-%m-%d %H:%M} to "
                f"{timezone.localtime(busy_end):%H:%M}"
            )


def check_availability(
    provider,
    start: datetime,
    end: datetime,
    occupied: Iterable[Tuple[datetime, datetime]],
    check_hours: bool = True,
) -> None:
    """
    Authoritative availability check, applied in order:

    1. provider online flag            -> ProviderUnavailable
    2. weekday in available days       -> OutsideScheduledDays
    3. window inside working hours     -> OutsideWorkingHours
    4. no overlap with occupied ranges -> SchedulingConflict

    ``occupied`` must already be restricted to OCCUPYING_STATUSES.
    """
    validate_window(start, end)

    if not provider.is_online:
        raise ProviderUnavailable("Provider is currently offline")

    if check_hours:
        check_schedule(provider.schedule, start, end)

    check_conflicts(start, end, occupied)


def evaluate_availability(provider, start, end, occupied) -> AvailabilityResult:
    """Non-raising wrapper used to annotate search results."""
    try:
        check_availability(provider, start, end, occupied)
    except MarketplaceError as exc:
        return AvailabilityResult(False, exc.error_code, exc.message)
    return AvailabilityResult(True)


def occupied_intervals(ref, exclude_booking_id=None):
    """
    Load the [start, end) ranges that currently reserve the provider's time.
    Call inside the same transaction that holds the provider row lock.
    """
    from bookings.models import Booking

    qs = Booking.objects.filter(
        **{f"{ref.booking_field}_id": ref.id},
        status__in=OCCUPYING_STATUSES,
    )
    if exclude_booking_id is not None:
        qs = qs.exclude(pk=exclude_booking_id)
    return list(qs.values_list("start", "end"))
