"""Demand ratio surge input: occupying bookings per online provider."""

import logging
from typing import Optional

from django.db.models import Q
from django.utils import timezone

from providers.models import DriverProfile, GuideProfile, ProviderKind

logger = logging.getLogger(__name__)


def current_demand_ratio(kind: str, now=None) -> Optional[float]:
    """
    Share of online providers of ``kind`` that are currently engaged.
    Returns None when nobody is online (no signal, no surge).
    """
    from bookings.models import Booking

    now = now or timezone.now()
    kind = str(kind)
    model = GuideProfile if kind == ProviderKind.GUIDE else DriverProfile
    online = model.objects.filter(is_online=True).count()
    if online == 0:
        return None

    engaged = (
        Booking.objects.filter(**{f"{kind}__is_online": True})
        .filter(Q(status="in_progress") | Q(status__in=["pending", "confirmed"], start__lte=now, end__gt=now))
        .values(f"{kind}_id")
        .distinct()
        .count()
    )
    return engaged / online
