"""
Duplicate detection for user-submitted points of interest.

A new point is auto-approved unless an active or approved point lies within
POI_DUPLICATE_RADIUS_KM and carries a similar name, in which case it is held
as ``needs_review`` for a moderator.

Name similarity is a cheap heuristic over normalized names, not an edit
distance: exact match, substring, or (for names sharing a word) a length
ratio above POI_NAME_LENGTH_RATIO. It over-matches short names that share a
word and under-matches misspellings.

The length ratio only counts once the names share a word. On its own it
would pair unrelated names of similar length: "Jungle Beach Cafe" and
"Galle Fort" normalize to 11 and 10 characters, a ratio of 0.9, yet a cafe
50 m from the fort must still be auto-approved.
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from common.utils import Location, bounding_box, distance_km
from pois.models import ApprovalStatus, POIStatus, PointOfInterest
from services.config import get_setting
from services.exceptions import (
    MissingEvidence,
    OutsideServiceArea,
    POINotFound,
    Unauthorized,
    ValidationFailure,
)

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^0-9a-z]+")


@dataclass
class POIResult:
    """Result object for POI operations."""
    success: bool
    poi: Optional[PointOfInterest] = None
    message: str = ""
    similar: List[Tuple[PointOfInterest, float]] = field(default_factory=list)


# ===================== Name similarity =====================

def _tokens(name: str) -> List[str]:
    return _NON_ALNUM.sub(" ", (name or "").lower()).split()


def normalize_name(name: str) -> str:
    """
    Lowercase, drop punctuation, collapse whitespace and strip generic
    nouns ("temple", "beach", ...). A name made only of generic nouns is
    kept as-is so it still compares against something.
    """
    tokens = _tokens(name)
    stopwords = set(get_setting("POI_NAME_STOPWORDS"))
    kept = [token for token in tokens if token not in stopwords]
    return " ".join(kept or tokens)


def names_are_similar(a: str, b: str) -> bool:
    left, right = normalize_name(a), normalize_name(b)
    if not left or not right:
        return False
    if left == right:
        return True
    if left in right or right in left:
        return True
    if set(left.split()) & set(right.split()):
        ratio = min(len(left), len(right)) / max(len(left), len(right))
        return ratio > get_setting("POI_NAME_LENGTH_RATIO")
    return False


# ===================== Spatial lookup =====================

def find_nearby_pois(location: Location, radius_km: Optional[float] = None, exclude_id=None):
    """Active or approved points within ``radius_km``, closest first, with their distance."""
    if radius_km is None:
        radius_km = get_setting("POI_DUPLICATE_RADIUS_KM")

    box = bounding_box(location, radius_km)
    qs = (
        PointOfInterest.objects.filter(
            Q(status=POIStatus.ACTIVE) | Q(approval_status=ApprovalStatus.APPROVED),
            latitude__gte=box.min_lat,
            latitude__lte=box.max_lat,
            longitude__gte=box.min_lng,
            longitude__lte=box.max_lng,
        )
        .exclude(approval_status=ApprovalStatus.REJECTED)
    )
    if exclude_id is not None:
        qs = qs.exclude(pk=exclude_id)

    nearby = []
    for poi in qs:
        distance = distance_km(location, poi.location)
        if distance <= radius_km:
            nearby.append((poi, distance))
    nearby.sort(key=lambda item: item[1])
    return nearby


def find_similar_pois(name: str, location: Location, exclude_id=None):
    return [
        (poi, distance)
        for poi, distance in find_nearby_pois(location, exclude_id=exclude_id)
        if names_are_similar(name, poi.name)
    ]


def classify_poi(name: str, location: Location) -> str:
    """Approval status a new point with this name and location would get."""
    if find_similar_pois(name, location):
        return ApprovalStatus.NEEDS_REVIEW
    return ApprovalStatus.APPROVED


# ===================== Submission & moderation =====================

def _check_service_area(location: Location) -> None:
    bounds = get_setting("SERVICE_AREA_BOUNDS")
    if not bounds:
        return
    south, north, west, east = bounds
    if not (south <= location.latitude <= north and west <= location.longitude <= east):
        raise OutsideServiceArea()


@transaction.atomic
def submit_poi(
    creator,
    name: str,
    location: Location,
    category: str,
    images: List[str],
    description: str = "",
    address: str = "",
    city: str = "",
    tags: Optional[List[str]] = None,
) -> POIResult:
    """Create a point of interest; its approval status is decided once, here."""
    name = (name or "").strip()
    if not name:
        raise ValidationFailure("Name is required")
    images = [image for image in (images or []) if image]
    if not images:
        raise MissingEvidence()
    _check_service_area(location)

    similar = find_similar_pois(name, location)
    approval = ApprovalStatus.NEEDS_REVIEW if similar else ApprovalStatus.APPROVED

    poi = PointOfInterest.objects.create(
        name=name,
        description=description,
        category=category,
        latitude=Decimal(str(round(location.latitude, 8))),
        longitude=Decimal(str(round(location.longitude, 8))),
        address=address,
        city=city,
        images=images,
        tags=list(tags or []),
        created_by=creator,
        approval_status=approval,
    )

    if similar:
        logger.info(
            "POI %s (%s) held for review; similar to %s",
            poi.id, name, ", ".join(f"#{p.id} {p.name}" for p, _ in similar),
        )
        message = "POI submitted for review due to similarity with existing locations"
    else:
        logger.info("POI %s (%s) auto-approved", poi.id, name)
        message = "POI created and auto-approved"

    return POIResult(success=True, poi=poi, message=message, similar=similar)


@transaction.atomic
def moderate_poi(poi_id: int, moderator, decision: str, reason: str = "") -> POIResult:
    """Moderator override of the automatic decision: approve or reject."""
    if not getattr(moderator, "is_moderator", False):
        raise Unauthorized("Only moderators can review points of interest")
    if decision not in ("approve", "reject"):
        raise ValidationFailure(f"Unknown moderation decision: {decision}")

    try:
        poi = PointOfInterest.objects.select_for_update().get(pk=poi_id)
    except PointOfInterest.DoesNotExist:
        raise POINotFound(f"Point of interest {poi_id} not found")

    if decision == "approve":
        poi.approval_status = ApprovalStatus.APPROVED
        poi.rejection_reason = ""
    else:
        poi.approval_status = ApprovalStatus.REJECTED
        poi.rejection_reason = reason
    poi.reviewed_by = moderator
    poi.reviewed_at = timezone.now()
    poi.save(update_fields=["approval_status", "rejection_reason", "reviewed_by", "reviewed_at", "updated_at"])

    logger.info("POI %s %sd by moderator %s", poi.id, decision, moderator.id)
    return POIResult(success=True, poi=poi, message=f"POI {poi.get_approval_status_display().lower()}")
