"""Provider-side mutations: profile creation, live location and online flag."""

import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from common.utils import Location
from common.utils.rate_limit import FixedWindowLimiter
from providers.models import WEEKDAYS, DriverProfile, GuideProfile, ProviderKind
from services.config import get_setting
from services.exceptions import ProviderNotFound, ProviderProfileNotAllowed, ValidationFailure
from services.matching.provider_ref import ProviderRef

logger = logging.getLogger(__name__)

MIN_PROVIDER_TIER = 2


def _location_limiter() -> FixedWindowLimiter:
    return FixedWindowLimiter("provider-location", get_setting("LOCATION_UPDATES_PER_MINUTE"), 60)


def get_provider_for_user(user, kind=None):
    """
    Return the user's guide or driver profile. Without ``kind`` the user's
    role decides, falling back to whichever profile exists.
    """
    kinds = [kind] if kind else [user.role, ProviderKind.GUIDE, ProviderKind.DRIVER]
    for candidate in kinds:
        if candidate == ProviderKind.GUIDE and hasattr(user, "guide_profile"):
            return user.guide_profile
        if candidate == ProviderKind.DRIVER and hasattr(user, "driver_profile"):
            return user.driver_profile
    raise ProviderNotFound("You do not have a provider profile")


# PROFILE CREATION
@transaction.atomic
def create_provider_profile(user, kind: str, available_days, working_hours_start, working_hours_end, **fields):
    """
    Create a guide or driver profile. Requires identity verification tier 2
    upstream; the profile itself starts as ``pending`` until a moderator
    verifies it.
    """
    if (user.verification_tier or 0) < MIN_PROVIDER_TIER:
        raise ProviderProfileNotAllowed()
    if kind not in ProviderKind.values:
        raise ValidationFailure(f"Unknown provider kind: {kind}")

    days = [day.lower() for day in available_days]
    unknown = sorted(set(days) - set(WEEKDAYS))
    if unknown:
        raise ValidationFailure(f"Unknown weekday(s): {', '.join(unknown)}")
    if not days:
        raise ValidationFailure("At least one available day is required")
    if working_hours_end <= working_hours_start:
        raise ValidationFailure("Working hours must end after they start")

    model = GuideProfile if kind == ProviderKind.GUIDE else DriverProfile
    if model.objects.filter(user=user).exists():
        raise ValidationFailure(f"You already have a {kind} profile")

    for rate in ("base_rate", "per_km_rate", "per_minute_rate"):
        if rate in fields and Decimal(str(fields[rate])) < 0:
            raise ValidationFailure(f"{rate} must not be negative")

    profile = model.objects.create(
        user=user,
        available_days=days,
        working_hours_start=working_hours_start,
        working_hours_end=working_hours_end,
        **fields,
    )
    if user.role == "traveler":
        user.role = kind
        user.save(update_fields=["role"])

    logger.info("%s profile %s created for user %s", kind.capitalize(), profile.pk, user.id)
    return profile


# LOCATION UPDATE
def update_provider_location(ref: ProviderRef, latitude, longitude):
    """
    Store the provider's live position. Rate limited per provider so a
    misbehaving client cannot flood the database.
    """
    location = Location.from_values(latitude, longitude)
    _location_limiter().check(f"{ref.kind}:{ref.id}")

    profile = ref.resolve()
    profile.current_latitude = Decimal(str(round(location.latitude, 6)))
    profile.current_longitude = Decimal(str(round(location.longitude, 6)))
    profile.last_location_update = timezone.now()
    profile.save(update_fields=["current_latitude", "current_longitude", "last_location_update"])

    logger.debug("Provider %s moved to (%s, %s)", ref, location.latitude, location.longitude)
    return profile


# ONLINE FLAG
def set_provider_online(ref: ProviderRef, is_online: bool):
    profile = ref.resolve()
    if profile.is_online != is_online:
        profile.is_online = is_online
        profile.save(update_fields=["is_online", "updated_at"])
        logger.info("Provider %s is now %s", ref, "online" if is_online else "offline")
    return profile
