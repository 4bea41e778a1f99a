"""
Notification dispatcher for booking events.

This module provides functions to:
- Send booking events to a user's personal channel group (user_<id>)
- Fan a booking event out to every party of the booking
- Deliver trip-sharing messages to e-mail addresses and phone numbers

Every send is best-effort: failures are logged and swallowed so that a
notification can never undo a committed state transition.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.core.mail import mail_admins, send_mail
from django.db import transaction

logger = logging.getLogger(__name__)


# ---------------------- Channel group events ----------------------

def _booking_payload(booking) -> Dict[str, Any]:
    from bookings.serializers import BookingSerializer
    return BookingSerializer(booking).data


def notify_user_event(
    user_id: Optional[int],
    event_type: str,
    booking=None,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Send an event to one user through their personal group: user_<user_id>

    Args:
        user_id: Target user's ID
        event_type: Event name the client sees (booking_confirmed, ride_request, sos_alert, ...)
        booking: Booking model instance the event refers to
        message: Optional message to include
        extra: Additional payload data

    Returns:
        True if sent successfully, False otherwise
    """
    if not user_id:
        return False

    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False

    payload = {"type": "booking.event", "event": event_type, **(extra or {})}
    if booking is not None:
        payload["booking_id"] = booking.id
        payload["status"] = booking.status
        payload["booking_data"] = _booking_payload(booking)
    if message:
        payload["message"] = message

    try:
        logger.debug("WS -> user_%s: %s", user_id, event_type)
        async_to_sync(channel_layer.group_send)(f"user_{user_id}", payload)
    except Exception:
        logger.exception("Failed to notify user %s of %s", user_id, event_type)
        return False
    return True


def booking_party_ids(booking) -> list:
    """User IDs of the requester and every named provider."""
    ids = [booking.requester_id]
    for provider in booking.providers:
        if provider.user_id not in ids:
            ids.append(provider.user_id)
    return ids


def notify_booking_parties(
    booking,
    event_type: str,
    message: str = "",
    exclude: Iterable[int] = (),
    extra: Dict[str, Any] = None,
) -> int:
    """Notify every party of the booking except ``exclude``; returns how many were reached."""
    excluded = set(exclude)
    sent = 0
    for user_id in booking_party_ids(booking):
        if user_id in excluded:
            continue
        if notify_user_event(user_id, event_type, booking, message, extra):
            sent += 1
    return sent


def notify_on_commit(func, *args, **kwargs) -> None:
    """Run a notification only once the surrounding transaction commits."""
    def _send():
        try:
            func(*args, **kwargs)
        except Exception:
            logger.exception("Deferred notification %s failed", getattr(func, "__name__", func))

    transaction.on_commit(_send)


# ---------------------- Contact delivery (e-mail / SMS) ----------------------

def is_email_contact(contact: str) -> bool:
    return "@" in contact


def send_email_message(address: str, subject: str, body: str) -> bool:
    try:
        send_mail(
            subject,
            body,
            getattr(settings, "DEFAULT_FROM_EMAIL", None),
            [address],
            fail_silently=False,
        )
    except Exception:
        logger.exception("E-mail to %s failed", address)
        return False
    return True


def send_sms_message(phone_number: str, body: str) -> bool:
    # No SMS gateway is wired in; the hand-off is recorded so an operator can follow up
    logger.info("SMS queued for %s: %s", phone_number, body)
    return True


def send_contact_message(contact: str, subject: str, body: str) -> bool:
    """Route a message to e-mail or SMS depending on the contact format."""
    contact = contact.strip()
    if not contact:
        return False
    if is_email_contact(contact):
        return send_email_message(contact, subject, body)
    return send_sms_message(contact, body)


# ---------------------- Safety team ----------------------

SAFETY_GROUP = "safety_team"


def notify_safety_team(incident, message: str = "") -> bool:
    """Alert on-duty staff (channel group + ADMINS e-mail) about an incident."""
    payload = {
        "type": "safety.incident",
        "incident_id": incident.id,
        "incident_type": incident.incident_type,
        "booking_id": incident.booking_id,
        "reporter_id": incident.reporter_id,
        "latitude": str(incident.latitude) if incident.latitude is not None else None,
        "longitude": str(incident.longitude) if incident.longitude is not None else None,
        "message": message or incident.description,
    }

    delivered = False
    channel_layer = get_channel_layer()
    if channel_layer is not None:
        try:
            async_to_sync(channel_layer.group_send)(SAFETY_GROUP, payload)
            delivered = True
        except Exception:
            logger.exception("Failed to alert safety team about incident %s", incident.id)

    try:
        mail_admins(
            f"[{incident.get_incident_type_display()}] booking {incident.booking_id}",
            payload["message"] or "No description provided.",
            fail_silently=False,
        )
        delivered = True
    except Exception:
        logger.exception("Failed to e-mail admins about incident %s", incident.id)

    return delivered
