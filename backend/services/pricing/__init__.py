"""
Pricing engine.

This module handles:
    - Fare estimation (base + distance + time)
    - Bounded surge multiplier (rush hour, weekend, weather, demand)
    - Commission split and ride platform fee
    - Final fare recomputation at completion
"""

from .fare_engine import (
    PriceBreakdown,
    BookingQuote,
    FinalFare,
    estimate,
    quote_booking,
    final_fare,
)
from .surge import SurgeInputs, WeatherCondition, calculate_surge
from .commission import commission_rate, commission_rate_for
from .inputs import build_surge_inputs
from .money import round_money

__all__ = [
    "PriceBreakdown",
    "BookingQuote",
    "FinalFare",
    "estimate",
    "quote_booking",
    "final_fare",
    "SurgeInputs",
    "WeatherCondition",
    "calculate_surge",
    "commission_rate",
    "commission_rate_for",
    "build_surge_inputs",
    "round_money",
]
