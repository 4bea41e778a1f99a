"""
Booking management service - Core booking lifecycle operations.

This module handles:
    - Creating bookings (race-safe availability check)
    - Confirming / starting / completing bookings
    - Cancelling bookings with tiered refunds
    - Rating completed bookings
"""

from .booking_lifecycle import (
    BookingResult,
    create_booking,
    confirm_booking,
    start_booking,
    complete_booking,
    cancel_booking,
    cancel_without_penalty,
    rate_booking,
    transition_booking,
    get_booking,
    get_booking_for_party,
    refund_for,
    running_average,
)

__all__ = [
    "BookingResult",
    "create_booking",
    "confirm_booking",
    "start_booking",
    "complete_booking",
    "cancel_booking",
    "cancel_without_penalty",
    "rate_booking",
    "transition_booking",
    "get_booking",
    "get_booking_for_party",
    "refund_for",
    "running_average",
]
