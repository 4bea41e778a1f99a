"""
Provider matching service.

This module handles:
    - Tagged guide/driver references and row-lock ordering
    - Availability against weekly schedules and occupying bookings
    - Searching providers near a location
"""

from .provider_ref import ProviderRef, lock_order
from .availability import (
    OCCUPYING_STATUSES,
    AvailabilityResult,
    WeeklySchedule,
    check_availability,
    evaluate_availability,
    intervals_overlap,
    occupied_intervals,
    validate_window,
)
from .provider_search import ProviderMatch, SearchFilters, search_providers

__all__ = [
    "ProviderRef",
    "lock_order",
    "OCCUPYING_STATUSES",
    "AvailabilityResult",
    "WeeklySchedule",
    "check_availability",
    "evaluate_availability",
    "intervals_overlap",
    "occupied_intervals",
    "validate_window",
    "ProviderMatch",
    "SearchFilters",
    "search_providers",
]
