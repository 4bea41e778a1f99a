"""Celery tasks for booking-related background processing."""

import logging

from celery import shared_task
from django.db import transaction

from services.config import get_setting
from services.exceptions import BookingNotFound

logger = logging.getLogger(__name__)


@shared_task
def expire_ride_request_task(booking_id: int):
    """
    Cancel a ride request the driver has not answered.

    Scheduled when the ride is requested, to run once the response window
    has passed. If the driver already responded, this is a no-op.
    """
    from services.dispatch import expire_ride_request

    try:
        result = expire_ride_request(booking_id)
    except BookingNotFound:
        logger.warning("Booking %s not found for ride expiry task", booking_id)
        return False

    if result.success:
        logger.info("Expired unanswered ride request %s", booking_id)
    else:
        logger.debug("Ride %s not expired: %s", booking_id, result.message)
    return result.success


@shared_task
def expire_stale_rides_task():
    """Periodic sweep for rides whose scheduled expiry never ran."""
    from services.dispatch import expire_stale_ride_requests

    expired = expire_stale_ride_requests()
    if expired:
        logger.info("Expired %d stale ride request(s)", expired)
    return expired


def schedule_ride_expiry(booking_id: int) -> None:
    """Queue the response-timeout check once the ride request has committed."""
    countdown = get_setting("RIDE_RESPONSE_TIMEOUT_SECONDS")

    def _enqueue():
        try:
            expire_ride_request_task.apply_async(args=[booking_id], countdown=countdown)
        except Exception:
            # The process_ride_timeouts sweep still picks the ride up
            logger.exception("Could not schedule expiry for ride %s", booking_id)

    transaction.on_commit(_enqueue)
