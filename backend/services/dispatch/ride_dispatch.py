"""
On-demand ride dispatch.

A ride is a booking of type ``ride`` that starts now. After it is created
the driver must accept or decline; if neither happens within the response
window, an external timer (Celery task or the process_ride_timeouts
command) calls expire_ride_request(), which cancels it as ProviderTimeout.
"""

import logging
from datetime import timedelta
from typing import Optional

from django.db import transaction
from django.utils import timezone

from bookings.models import Booking, BookingStatus, BookingType, CancelledBy
from common.utils import Location
from common.utils.rate_limit import FixedWindowLimiter
from realtime.notifications import notify_booking_parties, notify_on_commit, notify_user_event
from services.booking_management import (
    BookingResult,
    cancel_without_penalty,
    complete_booking,
    create_booking,
    get_booking,
    start_booking,
)
from services.config import get_setting
from services.exceptions import InvalidTransition, Unauthorized, ValidationFailure
from services.matching.provider_ref import ProviderRef

logger = logging.getLogger(__name__)

PROVIDER_TIMEOUT_REASON = "ProviderTimeout"


def _ride_limiter() -> FixedWindowLimiter:
    return FixedWindowLimiter("ride-requests", get_setting("RIDE_REQUESTS_PER_HOUR"), 3600)


def _get_ride(booking_id: int, for_update: bool = False) -> Booking:
    booking = get_booking(booking_id, for_update=for_update)
    if booking.booking_type != BookingType.RIDE:
        raise InvalidTransition("This booking is not an on-demand ride")
    return booking


# ===================== Passenger =====================

def request_ride(
    requester,
    driver_id: int,
    pickup: Location,
    dropoff: Optional[Location] = None,
    estimated_duration_minutes: Optional[int] = None,
    party_size: int = 1,
    pickup_address: str = "",
    dropoff_address: str = "",
    distance: Optional[float] = None,
) -> BookingResult:
    """
    Request a ride from a specific driver, starting now.

    The caller is responsible for scheduling the response-timeout check
    (see bookings.tasks.schedule_ride_expiry).
    """
    _ride_limiter().check(requester.id)

    minutes = estimated_duration_minutes or get_setting("DEFAULT_RIDE_DURATION_MINUTES")
    if minutes <= 0:
        raise ValidationFailure("Estimated duration must be positive")

    start = timezone.now()
    result = create_booking(
        requester,
        [ProviderRef.driver(driver_id)],
        start,
        start + timedelta(minutes=minutes),
        pickup,
        dropoff,
        party_size=party_size,
        distance=distance,
        pickup_address=pickup_address,
        dropoff_address=dropoff_address,
        is_ride=True,
    )
    result.message = "Ride requested. Waiting for the driver to respond."
    result.extra = {
        **(result.extra or {}),
        "response_timeout_seconds": get_setting("RIDE_RESPONSE_TIMEOUT_SECONDS"),
    }
    return result


# ===================== Driver =====================

@transaction.atomic
def respond_to_ride(booking_id: int, driver_user, action: str, reason: str = "") -> BookingResult:
    """
    Accept (pending -> confirmed) or decline (pending -> cancelled, full
    refund, cancelled_by=provider) a ride request.
    """
    if action not in ("accept", "decline"):
        raise ValidationFailure(f"Unknown ride response: {action}")

    booking = _get_ride(booking_id, for_update=True)
    if booking.driver is None or booking.driver.user_id != driver_user.id:
        raise Unauthorized("This ride was not requested from you")
    if booking.status != BookingStatus.PENDING:
        raise InvalidTransition(f"This ride is already {booking.status}")

    if action == "accept":
        booking.status = BookingStatus.CONFIRMED
        booking.confirmed_at = timezone.now()
        booking.save(update_fields=["status", "confirmed_at", "updated_at"])
        notify_on_commit(
            notify_user_event, booking.requester_id, "ride_accepted", booking,
            "Your ride has been accepted! The driver is on the way.",
        )
        logger.info("Ride %s accepted by driver %s", booking.booking_reference, driver_user.id)
        return BookingResult(success=True, booking=booking, message="Ride accepted. Navigate to pickup location.")

    cancel_without_penalty(booking, CancelledBy.PROVIDER, driver_user, reason or "Declined by driver")
    notify_on_commit(
        notify_user_event, booking.requester_id, "ride_declined", booking,
        "The driver declined your ride. You have not been charged.",
    )
    logger.info("Ride %s declined by driver %s", booking.booking_reference, driver_user.id)
    return BookingResult(success=True, booking=booking, message="Ride declined")


def start_ride(booking_id: int, driver_user) -> BookingResult:
    """Passenger picked up: confirmed -> in_progress."""
    _get_ride(booking_id)
    result = start_booking(booking_id, driver_user)
    result.message = "Ride started"
    return result


def complete_ride(
    booking_id: int,
    driver_user,
    actual_distance_km=None,
    actual_duration_minutes=None,
) -> BookingResult:
    """Drop-off: in_progress -> completed, re-priced from actual figures when given."""
    _get_ride(booking_id)
    result = complete_booking(
        booking_id,
        driver_user,
        actual_distance_km=actual_distance_km,
        actual_duration_minutes=actual_duration_minutes,
    )
    result.message = "Ride completed"
    return result


# ===================== Timeouts =====================

@transaction.atomic
def expire_ride_request(booking_id: int, timeout_seconds: Optional[int] = None) -> BookingResult:
    """
    Cancel a ride the driver never answered (reason ProviderTimeout).

    Safe to call repeatedly: a ride that is no longer pending, or that is
    younger than the timeout, is returned unchanged with success=False.
    """
    if timeout_seconds is None:
        timeout_seconds = get_setting("RIDE_RESPONSE_TIMEOUT_SECONDS")

    booking = get_booking(booking_id, for_update=True)
    if booking.booking_type != BookingType.RIDE or booking.status != BookingStatus.PENDING:
        return BookingResult(success=False, booking=booking, message=f"Ride is {booking.status}; nothing to expire")

    age = timezone.now() - booking.created_at
    if age < timedelta(seconds=timeout_seconds):
        return BookingResult(success=False, booking=booking, message="Driver still has time to respond")

    cancel_without_penalty(booking, CancelledBy.SYSTEM, None, PROVIDER_TIMEOUT_REASON)
    notify_on_commit(
        notify_booking_parties, booking, "ride_expired",
        "The driver did not respond in time. Please request another ride.",
    )
    logger.info("Ride %s expired after %ss without a response", booking.booking_reference, timeout_seconds)
    return BookingResult(success=True, booking=booking, message="Ride request expired")


def expire_stale_ride_requests(timeout_seconds: Optional[int] = None) -> int:
    """Expire every pending ride older than the timeout; returns how many were cancelled."""
    if timeout_seconds is None:
        timeout_seconds = get_setting("RIDE_RESPONSE_TIMEOUT_SECONDS")

    cutoff = timezone.now() - timedelta(seconds=timeout_seconds)
    stale_ids = list(
        Booking.objects.filter(
            booking_type=BookingType.RIDE,
            status=BookingStatus.PENDING,
            created_at__lte=cutoff,
        ).values_list("id", flat=True)
    )

    expired = 0
    for booking_id in stale_ids:
        if expire_ride_request(booking_id, timeout_seconds).success:
            expired += 1
    return expired
