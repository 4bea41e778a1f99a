"""
Trip safety actions: share a trip, trigger SOS, report and resolve incidents.

None of these change the booking's status. An SOS is only ever refused
when the caller is not the booking's requester.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from django.db import transaction
from django.utils import timezone

from bookings.models import IncidentStatus, IncidentType, SafetyIncident
from common.utils import Location
from realtime.notifications import (
    notify_booking_parties,
    notify_on_commit,
    notify_safety_team,
    send_contact_message,
)
from services.booking_management.booking_lifecycle import get_booking, is_admin, is_named_provider
from services.config import get_setting
from services.exceptions import (
    IncidentNotFound,
    InvalidTransition,
    Unauthorized,
    ValidationFailure,
)

logger = logging.getLogger(__name__)


def _coordinates(location: Optional[Location]):
    if location is None:
        return None, None
    return (
        Decimal(str(round(location.latitude, 6))),
        Decimal(str(round(location.longitude, 6))),
    )


def tracking_link(booking) -> str:
    return f"{get_setting('TRACKING_BASE_URL').rstrip('/')}/{booking.booking_reference}"


def share_trip(booking_id: int, requester, contacts: Iterable[str]) -> Dict:
    """
    Send the live tracking link to e-mail addresses or phone numbers.

    Returns:
        {"tracking_link": ..., "shared_with": [contacts that were reached]}
    """
    booking = get_booking(booking_id)
    if booking.requester_id != requester.id:
        raise Unauthorized("Only the traveler can share this trip")
    if booking.is_terminal:
        raise InvalidTransition(f"Cannot share a trip that is {booking.status}")

    contacts = [c.strip() for c in contacts if c and c.strip()]
    if not contacts:
        raise ValidationFailure("At least one contact is required")

    link = tracking_link(booking)
    body = (
        f"{requester.get_full_name() or requester.username} is sharing their trip "
        f"{booking.booking_reference} with you. Follow it live: {link}"
    )

    shared_with: List[str] = []
    for contact in contacts:
        if send_contact_message(contact, "Live trip tracking", body):
            shared_with.append(contact)

    logger.info("Trip %s shared with %d contact(s)", booking.booking_reference, len(shared_with))
    return {"tracking_link": link, "shared_with": shared_with}


@transaction.atomic
def trigger_sos(
    booking_id: int,
    requester,
    location: Optional[Location] = None,
    message: str = "",
) -> SafetyIncident:
    """
    Raise an SOS for a booking in any state. Always creates an open
    SafetyIncident and alerts the safety team and the booking's providers.
    """
    booking = get_booking(booking_id)
    if booking.requester_id != requester.id:
        raise Unauthorized("Only the traveler on this booking can raise an SOS")

    latitude, longitude = _coordinates(location)
    incident = SafetyIncident.objects.create(
        booking=booking,
        reporter=requester,
        incident_type=IncidentType.SOS,
        latitude=latitude,
        longitude=longitude,
        description=message,
        status=IncidentStatus.OPEN,
    )

    logger.error(
        "SOS triggered on booking %s by user %s at (%s, %s): %s",
        booking.booking_reference, requester.id, latitude, longitude, message or "-",
    )
    notify_on_commit(notify_safety_team, incident, message or "SOS triggered")
    notify_on_commit(
        notify_booking_parties, booking, "sos_alert",
        "The traveler has triggered an SOS alert.", exclude=[requester.id],
        extra={"incident_id": incident.id},
    )
    return incident


@transaction.atomic
def report_incident(
    booking_id: int,
    reporter,
    description: str,
    evidence: Optional[List[str]] = None,
    location: Optional[Location] = None,
) -> SafetyIncident:
    """File an incident report (requester or a booked provider); lands under review."""
    booking = get_booking(booking_id)
    if booking.requester_id != reporter.id and not is_named_provider(booking, reporter):
        raise Unauthorized("Only parties to this booking can report an incident")
    if not description or not description.strip():
        raise ValidationFailure("Please describe what happened")

    latitude, longitude = _coordinates(location)
    incident = SafetyIncident.objects.create(
        booking=booking,
        reporter=reporter,
        incident_type=IncidentType.INCIDENT,
        latitude=latitude,
        longitude=longitude,
        description=description.strip(),
        evidence=list(evidence or []),
        status=IncidentStatus.UNDER_REVIEW,
    )

    logger.warning("Incident #%s reported on booking %s by %s", incident.id, booking.booking_reference, reporter.id)
    notify_on_commit(notify_safety_team, incident)
    return incident


@transaction.atomic
def resolve_incident(incident_id: int, staff) -> SafetyIncident:
    """Close an incident. Moderators and administrators only."""
    if not (getattr(staff, "is_moderator", False) or is_admin(staff)):
        raise Unauthorized("Only staff can resolve incidents")

    try:
        incident = SafetyIncident.objects.select_for_update().get(pk=incident_id)
    except SafetyIncident.DoesNotExist:
        raise IncidentNotFound(f"Incident {incident_id} not found")

    if incident.status == IncidentStatus.RESOLVED:
        raise InvalidTransition("Incident is already resolved")

    incident.status = IncidentStatus.RESOLVED
    incident.resolved_by = staff
    incident.resolved_at = timezone.now()
    incident.save(update_fields=["status", "resolved_by", "resolved_at"])

    logger.info("Incident #%s resolved by %s", incident.id, staff.id)
    return incident
