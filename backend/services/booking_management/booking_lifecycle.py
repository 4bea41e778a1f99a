"""
Core booking lifecycle operations.

    pending -> confirmed -> in_progress -> completed
    pending | confirmed -> cancelled

Every transition locks the booking row before checking its guard, and
notifications are deferred until the transition has committed.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F
from django.utils import timezone
from django.utils.crypto import get_random_string

from bookings.models import Booking, BookingStatus, BookingType, CancelledBy, PaymentStatus
from common.utils import Location, distance_km
from providers.models import ProviderKind
from realtime.notifications import notify_booking_parties, notify_on_commit, notify_user_event
from services.config import get_setting
from services.exceptions import (
    AlreadyRated,
    BookingNotFound,
    CancellationWindowClosed,
    InvalidRating,
    InvalidTransition,
    NotCompleted,
    PartySizeExceeded,
    Unauthorized,
    ValidationFailure,
)
from services.matching.availability import check_availability, occupied_intervals, validate_window
from services.matching.provider_ref import ProviderRef, lock_order
from services.pricing import SurgeInputs, build_surge_inputs, final_fare, quote_booking, round_money

logger = logging.getLogger(__name__)

REFERENCE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


@dataclass
class BookingResult:
    """Result object for booking operations."""
    success: bool
    booking: Optional[Booking] = None
    message: str = ""
    error_code: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


# ===================== Helpers =====================

def generate_booking_reference(is_ride: bool = False) -> str:
    prefix = "R-" if is_ride else "B-"
    while True:
        reference = prefix + get_random_string(8, REFERENCE_ALPHABET)
        if not Booking.objects.filter(booking_reference=reference).exists():
            return reference


def booking_type_for(refs: Iterable[ProviderRef], is_ride: bool = False) -> str:
    kinds = {ref.kind for ref in refs}
    if is_ride:
        return BookingType.RIDE
    if kinds == {ProviderKind.GUIDE, ProviderKind.DRIVER}:
        return BookingType.COMBINED
    if kinds == {ProviderKind.GUIDE}:
        return BookingType.GUIDE
    return BookingType.DRIVER


def is_admin(user) -> bool:
    return bool(getattr(user, "is_marketplace_admin", False))


def is_named_provider(booking: Booking, user) -> bool:
    return any(provider.user_id == user.id for provider in booking.providers)


def get_booking(booking_id: int, for_update: bool = False) -> Booking:
    qs = Booking.objects.select_related("requester", "guide__user", "driver__user")
    if for_update:
        # lock only the booking row; joined provider rows are locked explicitly when needed
        qs = qs.select_for_update(of=("self",))
    try:
        return qs.get(pk=booking_id)
    except Booking.DoesNotExist:
        raise BookingNotFound(f"Booking {booking_id} not found")


def get_booking_for_party(booking_id: int, user) -> Booking:
    """Fetch a booking the user is allowed to see."""
    booking = get_booking(booking_id)
    if booking.requester_id != user.id and not is_named_provider(booking, user) and not is_admin(user):
        raise Unauthorized("You are not a party to this booking")
    return booking


def _require_provider_or_admin(booking: Booking, actor) -> None:
    if not (is_named_provider(booking, actor) or is_admin(actor)):
        raise Unauthorized("Only the booked provider or an administrator can do this")


def _require_status(booking: Booking, action: str, *allowed) -> None:
    if booking.status not in allowed:
        raise InvalidTransition(f"Cannot {action} a booking that is {booking.status}")


def _check_party_size(provider, party_size: int) -> None:
    capacity = getattr(provider, "max_group_size", None) or getattr(provider, "max_passengers", None)
    if capacity and party_size > capacity:
        raise PartySizeExceeded(f"{provider} takes at most {capacity} people", capacity=capacity)


def _window_minutes(start: datetime, end: datetime) -> int:
    return max(1, math.ceil((end - start).total_seconds() / 60))


# ===================== Create =====================

def create_booking(
    requester,
    provider_refs: List[ProviderRef],
    start: datetime,
    end: datetime,
    pickup: Location,
    dropoff: Optional[Location] = None,
    party_size: int = 1,
    distance: Optional[float] = None,
    pickup_address: str = "",
    dropoff_address: str = "",
    special_requests: str = "",
    is_ride: bool = False,
    surge_inputs: Optional[SurgeInputs] = None,
) -> BookingResult:
    """
    Create a pending booking for one guide, one driver or both.

    Provider rows are locked in a stable order and their occupying bookings
    are re-read under the lock, so concurrent attempts for the same slot
    serialize and every loser sees SchedulingConflict.

    Args:
        requester: User model instance (traveler)
        provider_refs: Providers to book, at most one per kind
        start, end: Timezone-aware booking window
        pickup, dropoff: Locations; the trip distance defaults to the
            great-circle distance between them
        party_size: Number of people
        distance: Explicit trip distance in km
        is_ride: Book as an on-demand ride (driver only, platform fee applies)
        surge_inputs: Pre-built surge inputs; looked up when omitted

    Returns:
        BookingResult with the created booking

    Raises:
        InvalidTimeWindow, PartySizeExceeded, ProviderNotFound,
        ProviderUnavailable, OutsideScheduledDays, OutsideWorkingHours,
        SchedulingConflict
    """
    validate_window(start, end)
    refs = list(provider_refs)
    if not refs:
        raise ValidationFailure("At least one provider is required")
    if len({ref.kind for ref in refs}) != len(refs):
        raise ValidationFailure("At most one guide and one driver can be booked together")
    if is_ride and [ref.kind for ref in refs] != [ProviderKind.DRIVER]:
        raise ValidationFailure("A ride is booked with exactly one driver")
    if party_size < 1:
        raise ValidationFailure("Party size must be at least 1")

    if distance is None:
        distance = distance_km(pickup, dropoff) if dropoff is not None else 0.0
    duration = _window_minutes(start, end)

    # Collaborator lookups stay outside the transaction
    if surge_inputs is None:
        demand_kind = ProviderKind.DRIVER if any(r.kind == ProviderKind.DRIVER for r in refs) else ProviderKind.GUIDE
        surge_inputs = build_surge_inputs(start, pickup, demand_kind)

    with transaction.atomic():
        locked = {}
        for ref in lock_order(refs):
            provider = ref.resolve(for_update=True)
            check_availability(provider, start, end, occupied_intervals(ref))
            _check_party_size(provider, party_size)
            locked[ref.kind] = provider

        guide = locked.get(ProviderKind.GUIDE)
        driver = locked.get(ProviderKind.DRIVER)
        providers = [p for p in (guide, driver) if p is not None]
        quote = quote_booking(providers, distance, duration, surge_inputs, is_ride=is_ride)

        booking = Booking.objects.create(
            booking_reference=generate_booking_reference(is_ride),
            requester=requester,
            guide=guide,
            driver=driver,
            booking_type=booking_type_for(refs, is_ride),
            start=start,
            end=end,
            duration_minutes=duration,
            party_size=party_size,
            pickup_latitude=Decimal(str(round(pickup.latitude, 6))),
            pickup_longitude=Decimal(str(round(pickup.longitude, 6))),
            pickup_address=pickup_address,
            dropoff_latitude=Decimal(str(round(dropoff.latitude, 6))) if dropoff else None,
            dropoff_longitude=Decimal(str(round(dropoff.longitude, 6))) if dropoff else None,
            dropoff_address=dropoff_address,
            special_requests=special_requests,
            estimated_distance_km=round_money(distance),
            surge_multiplier=quote.surge_multiplier,
            price_breakdown=quote.as_dict(),
            total_amount=quote.total,
            platform_fee=quote.platform_fee,
            commission_amount=quote.commission,
            status=BookingStatus.PENDING,
        )

        event = "ride_request" if is_ride else "booking_requested"
        notify_on_commit(
            notify_booking_parties, booking, event,
            f"New request from {requester.username}", exclude=[requester.id],
        )

    logger.info("Booking %s created by %s (%s)", booking.booking_reference, requester.id, booking.booking_type)
    return BookingResult(
        success=True,
        booking=booking,
        message="Booking request sent",
        extra={"price_breakdown": booking.price_breakdown},
    )


# ===================== Provider / admin transitions =====================

@transaction.atomic
def confirm_booking(booking_id: int, actor) -> BookingResult:
    """pending -> confirmed. Named provider or admin only."""
    booking = get_booking(booking_id, for_update=True)
    _require_provider_or_admin(booking, actor)
    _require_status(booking, "confirm", BookingStatus.PENDING)

    booking.status = BookingStatus.CONFIRMED
    booking.confirmed_at = timezone.now()
    booking.save(update_fields=["status", "confirmed_at", "updated_at"])

    notify_on_commit(
        notify_user_event, booking.requester_id, "booking_confirmed", booking,
        "Your booking has been confirmed.",
    )
    logger.info("Booking %s confirmed by %s", booking.booking_reference, actor.id)
    return BookingResult(success=True, booking=booking, message="Booking confirmed")


@transaction.atomic
def start_booking(booking_id: int, actor) -> BookingResult:
    """confirmed -> in_progress, stamping the actual start time."""
    booking = get_booking(booking_id, for_update=True)
    _require_provider_or_admin(booking, actor)
    _require_status(booking, "start", BookingStatus.CONFIRMED)

    booking.status = BookingStatus.IN_PROGRESS
    booking.started_at = timezone.now()
    booking.save(update_fields=["status", "started_at", "updated_at"])

    notify_on_commit(
        notify_user_event, booking.requester_id, "booking_started", booking,
        "Your trip has started.",
    )
    logger.info("Booking %s started by %s", booking.booking_reference, actor.id)
    return BookingResult(success=True, booking=booking, message="Booking started")


def _estimated_fares(booking: Booking) -> Dict[str, Decimal]:
    """Per-kind fare (total minus platform fee) as quoted at creation."""
    fares = {}
    for kind, part in (booking.price_breakdown or {}).get("parts", {}).items():
        fares[kind] = Decimal(part["total"]) - Decimal(part.get("platform_fee", "0"))
    return fares


@transaction.atomic
def complete_booking(
    booking_id: int,
    actor,
    actual_distance_km=None,
    actual_duration_minutes=None,
) -> BookingResult:
    """
    in_progress -> completed.

    Recomputes the commission (and, for rides with actual figures, the fare),
    records the variance against the estimate, and bumps completion counters.
    """
    booking = get_booking(booking_id, for_update=True)
    _require_provider_or_admin(booking, actor)
    _require_status(booking, "complete", BookingStatus.IN_PROGRESS)

    now = timezone.now()
    is_ride = booking.booking_type == BookingType.RIDE
    fallback_duration = booking.duration_minutes
    if booking.started_at:
        fallback_duration = _window_minutes(booking.started_at, now)

    fare = final_fare(
        booking.providers,
        booking.total_amount,
        booking.surge_multiplier,
        actual_distance_km=actual_distance_km,
        actual_duration_minutes=actual_duration_minutes,
        fallback_distance_km=booking.estimated_distance_km,
        fallback_duration_minutes=fallback_duration,
        is_ride=is_ride,
        estimated_fares=_estimated_fares(booking),
    )

    booking.status = BookingStatus.COMPLETED
    booking.completed_at = now
    booking.final_amount = fare.final
    booking.fare_variance = fare.variance
    booking.commission_amount = fare.commission
    booking.platform_fee = fare.platform_fee
    booking.save(update_fields=[
        "status", "completed_at", "final_amount", "fare_variance",
        "commission_amount", "platform_fee", "updated_at",
    ])

    for ref in lock_order(booking.provider_refs):
        ref.model.objects.filter(pk=ref.id).update(total_completed=F("total_completed") + 1)
    get_user_model().objects.filter(pk=booking.requester_id).update(
        completed_bookings=F("completed_bookings") + 1
    )

    notify_on_commit(
        notify_user_event, booking.requester_id, "booking_completed", booking,
        "Your trip is complete. Thank you for travelling with us!",
    )
    logger.info(
        "Booking %s completed by %s (final %s, variance %s)",
        booking.booking_reference, actor.id, fare.final, fare.variance,
    )
    return BookingResult(
        success=True,
        booking=booking,
        message="Booking completed",
        extra={
            "estimated_fare": str(fare.estimated),
            "final_fare": str(fare.final),
            "variance": str(fare.variance),
            "variance_percentage": str(fare.variance_percentage) if fare.variance_percentage is not None else None,
        },
    )


# ===================== Cancellation =====================

def refund_for(total, hours_before_start: float) -> Decimal:
    """
    Tiered refund: more than 24h before start refunds everything,
    more than 2h refunds half, anything later refunds nothing.
    """
    total = Decimal(str(total))
    if hours_before_start > get_setting("FULL_REFUND_HOURS"):
        return round_money(total)
    if hours_before_start > get_setting("CANCELLATION_CUTOFF_HOURS"):
        return round_money(total * Decimal(str(get_setting("PARTIAL_REFUND_RATIO"))))
    return Decimal("0.00")


def _apply_cancellation(booking: Booking, cancelled_by: str, user, reason: str, refund: Decimal) -> None:
    booking.status = BookingStatus.CANCELLED
    booking.cancelled_by = cancelled_by
    booking.cancelled_by_user = user
    booking.cancellation_reason = reason
    booking.refund_amount = refund
    booking.cancelled_at = timezone.now()
    fields = [
        "status", "cancelled_by", "cancelled_by_user", "cancellation_reason",
        "refund_amount", "cancelled_at", "updated_at",
    ]
    if booking.payment_status == PaymentStatus.PAID and refund > 0:
        if refund >= booking.total_amount:
            booking.payment_status = PaymentStatus.REFUNDED
        else:
            booking.payment_status = PaymentStatus.PARTIALLY_REFUNDED
        fields.append("payment_status")
    booking.save(update_fields=fields)


@transaction.atomic
def cancel_booking(booking_id: int, actor, reason: str = "") -> BookingResult:
    """
    Cancel a pending or confirmed booking.

    The requester and named providers may cancel only more than
    CANCELLATION_CUTOFF_HOURS before start. Administrators who are not a
    party to the booking bypass that cutoff; the refund tiers still apply.
    """
    booking = get_booking(booking_id, for_update=True)

    if booking.requester_id == actor.id:
        cancelled_by = CancelledBy.REQUESTER
    elif is_named_provider(booking, actor):
        cancelled_by = CancelledBy.PROVIDER
    elif is_admin(actor):
        cancelled_by = CancelledBy.ADMIN
    else:
        raise Unauthorized("You are not a party to this booking")

    _require_status(booking, "cancel", BookingStatus.PENDING, BookingStatus.CONFIRMED)

    hours_before = (booking.start - timezone.now()).total_seconds() / 3600
    cutoff = get_setting("CANCELLATION_CUTOFF_HOURS")
    if cancelled_by != CancelledBy.ADMIN and hours_before <= cutoff:
        raise CancellationWindowClosed(
            f"Bookings can only be cancelled more than {cutoff} hours before the start"
        )

    refund = refund_for(booking.total_amount, hours_before)
    _apply_cancellation(booking, cancelled_by, actor, reason, refund)

    notify_on_commit(
        notify_booking_parties, booking, "booking_cancelled",
        reason or "This booking has been cancelled.", exclude=[actor.id],
    )
    logger.info(
        "Booking %s cancelled by %s %s (refund %s)",
        booking.booking_reference, cancelled_by, actor.id, refund,
    )
    return BookingResult(
        success=True,
        booking=booking,
        message="Booking cancelled",
        extra={"refund_amount": str(refund)},
    )


def cancel_without_penalty(booking: Booking, cancelled_by: str, user, reason: str) -> None:
    """
    Cancel a locked, still-pending booking with a full refund. Used when the
    provider declines or never answers, so the requester is never penalised.
    """
    _apply_cancellation(booking, cancelled_by, user, reason, round_money(booking.total_amount))


# ===================== Rating =====================

def running_average(old_average, old_count: int, new_rating: int) -> Decimal:
    total = Decimal(str(old_average)) * old_count + new_rating
    return (total / (old_count + 1)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


@transaction.atomic
def rate_booking(booking_id: int, requester, rating: int, review: str = "") -> BookingResult:
    """
    Rate a completed booking once. Every named provider's running average
    is recomputed under a row lock.
    """
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise InvalidRating()

    booking = get_booking(booking_id, for_update=True)
    if booking.requester_id != requester.id:
        raise Unauthorized("Only the traveler who booked can rate it")
    if booking.status != BookingStatus.COMPLETED:
        raise NotCompleted()
    if booking.rating is not None:
        raise AlreadyRated()

    booking.rating = rating
    booking.review = review
    booking.rated_at = timezone.now()
    booking.save(update_fields=["rating", "review", "rated_at", "updated_at"])

    averages = {}
    for ref in lock_order(booking.provider_refs):
        provider = ref.resolve(for_update=True)
        provider.rating = running_average(provider.rating, provider.total_reviews, rating)
        provider.total_reviews += 1
        provider.save(update_fields=["rating", "total_reviews", "updated_at"])
        averages[str(ref.kind)] = str(provider.rating)

    logger.info("Booking %s rated %s by %s", booking.booking_reference, rating, requester.id)
    return BookingResult(
        success=True,
        booking=booking,
        message="Thank you for your feedback",
        extra={"provider_ratings": averages},
    )


# ===================== Dispatcher =====================

def transition_booking(booking_id: int, actor, action: str, payload: Optional[Dict[str, Any]] = None) -> BookingResult:
    """Route ``action`` (confirm, start, complete, cancel) to its transition."""
    payload = payload or {}
    if action == "confirm":
        return confirm_booking(booking_id, actor)
    if action == "start":
        return start_booking(booking_id, actor)
    if action == "complete":
        return complete_booking(
            booking_id,
            actor,
            actual_distance_km=payload.get("actual_distance_km"),
            actual_duration_minutes=payload.get("actual_duration_minutes"),
        )
    if action == "cancel":
        return cancel_booking(booking_id, actor, reason=payload.get("reason", ""))
    raise ValidationFailure(f"Unknown booking action: {action}")
