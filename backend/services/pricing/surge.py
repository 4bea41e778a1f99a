"""
Surge multiplier.

Starts at 1.0 and accumulates additive bumps for rush hours, weekends,
adverse weather and demand. Each bump is bounded by its configured size and
the final multiplier is capped.
"""

from dataclasses import dataclass, field
from datetime import datetime, time
from decimal import Decimal
from typing import List, Optional

from django.utils import timezone

from services.config import get_setting


class WeatherCondition:
    CLEAR = "clear"
    RAIN = "rain"
    STORM = "storm"


@dataclass(frozen=True)
class SurgeInputs:
    """Everything the multiplier depends on. Missing inputs add nothing."""
    at: Optional[datetime] = None
    weather: Optional[str] = None
    demand_ratio: Optional[float] = None


@dataclass
class SurgeComponent:
    kind: str
    reason: str
    bump: Decimal


@dataclass
class SurgeResult:
    multiplier: Decimal = Decimal("1.0")
    components: List[SurgeComponent] = field(default_factory=list)
    capped: bool = False


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def is_rush_hour(moment: datetime) -> bool:
    """Weekday and inside one of the [start, end) rush windows (local time)."""
    local = timezone.localtime(moment) if timezone.is_aware(moment) else moment
    if local.weekday() >= 5:
        return False
    now = local.time()
    for start, end in get_setting("SURGE_RUSH_HOUR_WINDOWS"):
        if _parse_hhmm(start) <= now < _parse_hhmm(end):
            return True
    return False


def is_weekend(moment: datetime) -> bool:
    local = timezone.localtime(moment) if timezone.is_aware(moment) else moment
    return local.weekday() >= 5


def _weather_bump(weather: Optional[str]) -> Optional[SurgeComponent]:
    if weather == WeatherCondition.STORM:
        return SurgeComponent("weather", "Stormy conditions", get_setting("SURGE_STORM_BUMP"))
    if weather == WeatherCondition.RAIN:
        return SurgeComponent("weather", "Rainy conditions", get_setting("SURGE_RAIN_BUMP"))
    return None


def _demand_bump(ratio: Optional[float]) -> Optional[SurgeComponent]:
    if ratio is None:
        return None
    if ratio > get_setting("SURGE_HIGH_DEMAND_RATIO"):
        return SurgeComponent("demand", "Very high demand", get_setting("SURGE_HIGH_DEMAND_BUMP"))
    if ratio > get_setting("SURGE_MEDIUM_DEMAND_RATIO"):
        return SurgeComponent("demand", "High demand", get_setting("SURGE_MEDIUM_DEMAND_BUMP"))
    return None


def calculate_surge(inputs: Optional[SurgeInputs]) -> SurgeResult:
    result = SurgeResult()
    if inputs is None:
        return result

    components: List[Optional[SurgeComponent]] = []
    if inputs.at is not None:
        if is_rush_hour(inputs.at):
            components.append(
                SurgeComponent("peak_time", "Rush hour", get_setting("SURGE_RUSH_HOUR_BUMP"))
            )
        if is_weekend(inputs.at):
            components.append(
                SurgeComponent("weekend", "Weekend", get_setting("SURGE_WEEKEND_BUMP"))
            )
    components.append(_weather_bump(inputs.weather))
    components.append(_demand_bump(inputs.demand_ratio))

    multiplier = Decimal("1.0")
    for component in components:
        if component is None:
            continue
        result.components.append(component)
        multiplier += component.bump

    cap = get_setting("SURGE_MAX_MULTIPLIER")
    if multiplier > cap:
        multiplier = cap
        result.capped = True

    result.multiplier = multiplier
    return result
