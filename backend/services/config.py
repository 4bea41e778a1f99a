"""
Engine configuration.

Defaults live here; deployments override individual keys through the
``MARKETPLACE`` dict in Django settings.
"""

from decimal import Decimal

from django.conf import settings

MARKETPLACE_DEFAULTS = {
    # Cancellation policy (hours before booking start)
    "CANCELLATION_CUTOFF_HOURS": 2,
    "FULL_REFUND_HOURS": 24,
    "PARTIAL_REFUND_RATIO": Decimal("0.50"),

    # Ride dispatch
    "RIDE_RESPONSE_TIMEOUT_SECONDS": 120,
    "DEFAULT_RIDE_DURATION_MINUTES": 30,
    "TRACKING_BASE_URL": "https://app.example.com/track/",

    # Commission rates
    "GUIDE_COMMISSION_VERIFIED": Decimal("0.10"),
    "GUIDE_COMMISSION_UNVERIFIED": Decimal("0.15"),
    "DRIVER_COMMISSION_STANDARD": Decimal("0.05"),
    "SUBSCRIPTION_COMMISSION_RATES": {"premium": Decimal("0.08")},
    "RIDE_PLATFORM_FEE_RATE": Decimal("0.05"),

    # Surge bumps (additive) and cap on the final multiplier
    "SURGE_RUSH_HOUR_BUMP": Decimal("0.20"),
    "SURGE_RUSH_HOUR_WINDOWS": (("07:00", "09:00"), ("17:00", "19:00")),
    "SURGE_WEEKEND_BUMP": Decimal("0.10"),
    "SURGE_RAIN_BUMP": Decimal("0.15"),
    "SURGE_STORM_BUMP": Decimal("0.25"),
    "SURGE_HIGH_DEMAND_RATIO": 0.8,
    "SURGE_HIGH_DEMAND_BUMP": Decimal("0.30"),
    "SURGE_MEDIUM_DEMAND_RATIO": 0.6,
    "SURGE_MEDIUM_DEMAND_BUMP": Decimal("0.15"),
    "SURGE_MAX_MULTIPLIER": Decimal("2.0"),

    # Weather lookup (surge input only)
    "WEATHER_API_URL": "https://api.openweathermap.org/data/2.5/weather",
    "WEATHER_API_KEY": "",
    "WEATHER_TIMEOUT_SECONDS": 3,
    "WEATHER_CACHE_SECONDS": 600,

    # Provider client
    "LOCATION_UPDATES_PER_MINUTE": 30,
    "RIDE_REQUESTS_PER_HOUR": 20,

    # POI duplicate detection
    "POI_DUPLICATE_RADIUS_KM": 0.3,
    "POI_NAME_LENGTH_RATIO": 0.6,
    "POI_NAME_STOPWORDS": (
        "temple", "shrine", "museum", "park", "beach",
        "lake", "mountain", "hill", "river", "cave",
    ),
    # (south, north, west, east) or None to accept any coordinate
    "SERVICE_AREA_BOUNDS": None,
}


def get_setting(key: str):
    """Return the configured value for ``key`` or its default."""
    overrides = getattr(settings, "MARKETPLACE", {}) or {}
    if key in overrides:
        return overrides[key]
    return MARKETPLACE_DEFAULTS[key]
