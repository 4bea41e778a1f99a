"""
Current-weather lookup used as a surge input.

Failures never propagate: the caller gets ``None`` and prices without a
weather bump.
"""

import logging
from typing import Optional

import requests
from django.core.cache import cache

from common.utils import Location
from services.config import get_setting
from .surge import WeatherCondition

logger = logging.getLogger(__name__)

_RAIN = {"Rain", "Drizzle"}
_STORM = {"Thunderstorm", "Squall", "Tornado"}


def classify_condition(main: str) -> str:
    if main in _STORM:
        return WeatherCondition.STORM
    if main in _RAIN:
        return WeatherCondition.RAIN
    return WeatherCondition.CLEAR


def get_current_condition(location: Location) -> Optional[str]:
    """
    Coarse weather condition (clear/rain/storm) at ``location``.

    Results are cached per ~1km cell. Returns None when no API key is
    configured or the lookup fails for any reason.
    """
    api_key = get_setting("WEATHER_API_KEY")
    if not api_key:
        return None

    cache_key = f"weather:{location.latitude:.2f}:{location.longitude:.2f}"
    try:
        cached = cache.get(cache_key)
    except Exception:
        logger.warning("Weather cache unavailable; querying the weather API directly", exc_info=True)
        cached = None
    if cached is not None:
        return cached

    try:
        response = requests.get(
            get_setting("WEATHER_API_URL"),
            params={"lat": location.latitude, "lon": location.longitude, "appid": api_key},
            timeout=get_setting("WEATHER_TIMEOUT_SECONDS"),
        )
        response.raise_for_status()
        main = response.json()["weather"][0]["main"]
    except (requests.RequestException, KeyError, IndexError, TypeError, ValueError):
        logger.warning("Weather lookup failed for %s; pricing without weather surge", location)
        return None

    condition = classify_condition(main)
    try:
        cache.set(cache_key, condition, timeout=get_setting("WEATHER_CACHE_SECONDS"))
    except Exception:
        logger.warning("Could not cache weather for %s", location, exc_info=True)
    return condition
