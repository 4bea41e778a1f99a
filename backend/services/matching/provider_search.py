"""
Provider search around a location.

Candidates are pre-filtered with a bounding box in the database, then
measured exactly with haversine and, when a time window is given, checked
against their schedule and occupying bookings.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from bookings.models import Booking
from common.utils import Location, bounding_box, distance_km
from providers.models import DriverProfile, GuideProfile, ProviderKind, SubscriptionTier, VerificationStatus
from services.exceptions import ValidationFailure
from .availability import (
    OCCUPYING_STATUSES,
    AvailabilityResult,
    evaluate_availability,
    validate_window,
)

logger = logging.getLogger(__name__)

SORT_KEYS = ("distance", "rating", "price")
MAX_RADIUS_KM = 100


@dataclass
class SearchFilters:
    kind: Optional[str] = None          # guide | driver | None for both
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    verified_only: bool = False
    min_rating: Optional[Decimal] = None
    max_base_rate: Optional[Decimal] = None
    language: Optional[str] = None      # guides only
    vehicle_type: Optional[str] = None  # drivers only
    party_size: Optional[int] = None
    include_unavailable: bool = False


@dataclass
class ProviderMatch:
    provider: object
    distance_km: float
    availability: AvailabilityResult

    @property
    def kind(self) -> str:
        return str(self.provider.kind)


def _candidates(model, origin: Location, radius_km: float, filters: SearchFilters):
    box = bounding_box(origin, radius_km)
    qs = (
        model.objects.select_related("user")
        .filter(
            current_latitude__isnull=False,
            current_longitude__isnull=False,
            current_latitude__gte=box.min_lat,
            current_latitude__lte=box.max_lat,
            current_longitude__gte=box.min_lng,
            current_longitude__lte=box.max_lng,
        )
        .exclude(verification_status=VerificationStatus.REJECTED)
    )
    if filters.verified_only:
        qs = qs.filter(verification_status=VerificationStatus.VERIFIED)
    if filters.min_rating is not None:
        qs = qs.filter(rating__gte=filters.min_rating)
    if filters.max_base_rate is not None:
        qs = qs.filter(base_rate__lte=filters.max_base_rate)
    if filters.party_size:
        capacity = "max_group_size" if model is GuideProfile else "max_passengers"
        qs = qs.filter(**{f"{capacity}__gte": filters.party_size})
    if model is DriverProfile and filters.vehicle_type:
        qs = qs.filter(vehicle_type__iexact=filters.vehicle_type)
    return qs


def _matches_language(provider, language: Optional[str]) -> bool:
    if not language or provider.kind != ProviderKind.GUIDE:
        return True
    return language.lower() in {lang.lower() for lang in provider.languages or []}


def _occupied_by_provider(kind: str, ids: List[int], start: datetime, end: datetime) -> Dict[int, list]:
    """Occupying bookings overlapping [start, end), grouped by provider id (one query)."""
    field = f"{kind}_id"
    rows = Booking.objects.filter(
        **{f"{field}__in": ids},
        status__in=OCCUPYING_STATUSES,
        start__lt=end,
        end__gt=start,
    ).values_list(field, "start", "end")

    grouped = defaultdict(list)
    for provider_id, busy_start, busy_end in rows:
        grouped[provider_id].append((busy_start, busy_end))
    return grouped


def _sort_key(sort_key: str):
    def key(match: ProviderMatch):
        premium = 0 if match.provider.subscription_tier == SubscriptionTier.PREMIUM else 1
        if sort_key == "rating":
            return (premium, -match.provider.rating, match.distance_km)
        if sort_key == "price":
            return (premium, match.provider.base_rate, match.distance_km)
        return (premium, match.distance_km)
    return key


def search_providers(
    location: Location,
    radius_km: float,
    filters: Optional[SearchFilters] = None,
    sort_key: str = "distance",
    limit: Optional[int] = None,
) -> List[ProviderMatch]:
    """
    Find guides and/or drivers within ``radius_km`` of ``location``.

    Args:
        location: Search origin
        radius_km: Search radius (0 < radius <= MAX_RADIUS_KM)
        filters: Kind, time window and attribute filters
        sort_key: "distance" (default), "rating" or "price"; premium
            subscribers are listed ahead of everyone else
        limit: Maximum number of results

    Returns:
        Ordered list of ProviderMatch. Unavailable providers are dropped
        unless ``filters.include_unavailable`` is set.
    """
    filters = filters or SearchFilters()
    if not 0 < radius_km <= MAX_RADIUS_KM:
        raise ValidationFailure(f"Radius must be between 0 and {MAX_RADIUS_KM} km")
    if sort_key not in SORT_KEYS:
        raise ValidationFailure(f"Unknown sort key: {sort_key}")
    if filters.kind is not None and filters.kind not in ProviderKind.values:
        raise ValidationFailure(f"Unknown provider kind: {filters.kind}")

    has_window = filters.start is not None or filters.end is not None
    if has_window:
        validate_window(filters.start, filters.end)

    models = [GuideProfile, DriverProfile]
    if filters.kind:
        models = [GuideProfile if filters.kind == ProviderKind.GUIDE else DriverProfile]

    matches: List[ProviderMatch] = []
    for model in models:
        nearby = []
        for provider in _candidates(model, location, radius_km, filters):
            if not _matches_language(provider, filters.language):
                continue
            distance = distance_km(location, provider.location)
            if distance <= radius_km:
                nearby.append((provider, distance))

        occupied = {}
        if has_window and nearby:
            occupied = _occupied_by_provider(
                str(model.kind), [p.pk for p, _ in nearby], filters.start, filters.end
            )

        for provider, distance in nearby:
            if has_window:
                availability = evaluate_availability(
                    provider, filters.start, filters.end, occupied.get(provider.pk, [])
                )
            elif provider.is_online:
                availability = AvailabilityResult(True)
            else:
                availability = AvailabilityResult(False, "provider_unavailable", "Provider is currently offline")

            if availability.available or filters.include_unavailable:
                matches.append(ProviderMatch(provider, round(distance, 3), availability))

    matches.sort(key=_sort_key(sort_key))
    logger.debug(
        "Provider search at (%s, %s) r=%skm returned %d match(es)",
        location.latitude, location.longitude, radius_km, len(matches),
    )
    return matches[:limit] if limit else matches
