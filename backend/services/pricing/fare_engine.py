"""
Fare estimation and final fare computation.

    subtotal   = base + distance * per_km + duration * per_minute
    surge      = subtotal * (multiplier - 1)
    fare       = subtotal + surge                  (commission base)
    fee        = fare * platform fee rate          (ride bookings only)
    total      = fare + fee
    commission = fare * commission rate

Money is Decimal throughout. Only the reported figures are rounded
(half-up, 2 dp); they are derived from unrounded intermediates.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from services.config import get_setting
from .money import round_money, to_decimal
from .surge import SurgeInputs, calculate_surge

logger = logging.getLogger(__name__)


@dataclass
class PriceBreakdown:
    base_charge: Decimal
    distance_charge: Decimal
    time_charge: Decimal
    subtotal: Decimal
    surge_multiplier: Decimal
    surge_amount: Decimal
    platform_fee: Decimal
    commission: Decimal
    commission_rate: Decimal
    total: Decimal
    provider_earnings: Decimal
    surge_components: List[Dict] = field(default_factory=list)

    def as_dict(self) -> Dict:
        return {
            "base_charge": str(self.base_charge),
            "distance_charge": str(self.distance_charge),
            "time_charge": str(self.time_charge),
            "subtotal": str(self.subtotal),
            "surge_multiplier": str(self.surge_multiplier),
            "surge_amount": str(self.surge_amount),
            "surge_components": self.surge_components,
            "platform_fee": str(self.platform_fee),
            "commission": str(self.commission),
            "commission_rate": str(self.commission_rate),
            "total": str(self.total),
            "provider_earnings": str(self.provider_earnings),
        }


def estimate(
    base_rate,
    per_distance_rate,
    per_time_rate,
    distance_km,
    duration_minutes,
    surge_inputs: Optional[SurgeInputs] = None,
    commission_rate=None,
    include_platform_fee: bool = False,
) -> PriceBreakdown:
    """
    Price one provider's share of a booking.

    Args:
        base_rate: Flat charge
        per_distance_rate: Charge per km
        per_time_rate: Charge per minute
        distance_km: Travelled distance
        duration_minutes: Engagement length
        surge_inputs: Time/weather/demand inputs, None for no surge
        commission_rate: Platform share of the post-surge fare (None = 0)
        include_platform_fee: Add the ride platform fee on top of the fare

    Returns:
        PriceBreakdown with rounded monetary values
    """
    base = to_decimal(base_rate)
    distance = to_decimal(distance_km)
    duration = to_decimal(duration_minutes)
    if min(base, distance, duration, to_decimal(per_distance_rate), to_decimal(per_time_rate)) < 0:
        raise ValueError("Rates, distance and duration must be non-negative")

    distance_charge = distance * to_decimal(per_distance_rate)
    time_charge = duration * to_decimal(per_time_rate)
    subtotal = base + distance_charge + time_charge

    surge = calculate_surge(surge_inputs)
    surge_amount = subtotal * (surge.multiplier - 1)
    fare = subtotal + surge_amount

    fee = Decimal("0")
    if include_platform_fee:
        fee = fare * get_setting("RIDE_PLATFORM_FEE_RATE")

    rate = to_decimal(commission_rate) if commission_rate is not None else Decimal("0")
    # commission is taken from the fare, never from the platform fee
    commission = fare * rate

    return PriceBreakdown(
        base_charge=round_money(base),
        distance_charge=round_money(distance_charge),
        time_charge=round_money(time_charge),
        subtotal=round_money(subtotal),
        surge_multiplier=surge.multiplier,
        surge_amount=round_money(surge_amount),
        platform_fee=round_money(fee),
        commission=round_money(commission),
        commission_rate=rate,
        total=round_money(fare + fee),
        provider_earnings=round_money(fare - commission),
        surge_components=[
            {"type": c.kind, "reason": c.reason, "bump": str(c.bump)}
            for c in surge.components
        ],
    )


@dataclass
class BookingQuote:
    """Sum of the per-provider breakdowns that make up one booking."""
    parts: Dict[str, PriceBreakdown]
    surge_multiplier: Decimal
    total: Decimal
    platform_fee: Decimal
    commission: Decimal

    def as_dict(self) -> Dict:
        return {
            "parts": {kind: part.as_dict() for kind, part in self.parts.items()},
            "surge_multiplier": str(self.surge_multiplier),
            "platform_fee": str(self.platform_fee),
            "commission": str(self.commission),
            "total": str(self.total),
        }


def quote_booking(
    providers,
    distance_km,
    duration_minutes,
    surge_inputs: Optional[SurgeInputs] = None,
    is_ride: bool = False,
) -> BookingQuote:
    """
    Price a booking over every named provider. Each provider is priced at
    their own rates and commission tier; the booking total is the sum.
    """
    from .commission import commission_rate_for

    parts: Dict[str, PriceBreakdown] = {}
    for provider in providers:
        parts[str(provider.kind)] = estimate(
            provider.base_rate,
            provider.per_km_rate,
            provider.per_minute_rate,
            distance_km,
            duration_minutes,
            surge_inputs=surge_inputs,
            commission_rate=commission_rate_for(provider),
            include_platform_fee=is_ride,
        )

    multiplier = next(iter(parts.values())).surge_multiplier if parts else Decimal("1.0")
    return BookingQuote(
        parts=parts,
        surge_multiplier=multiplier,
        total=sum((p.total for p in parts.values()), Decimal("0.00")),
        platform_fee=sum((p.platform_fee for p in parts.values()), Decimal("0.00")),
        commission=sum((p.commission for p in parts.values()), Decimal("0.00")),
    )


@dataclass
class FinalFare:
    estimated: Decimal
    final: Decimal
    variance: Decimal
    variance_percentage: Optional[Decimal]
    commission: Decimal
    platform_fee: Decimal


def final_fare(
    providers,
    estimated_total,
    surge_multiplier,
    actual_distance_km=None,
    actual_duration_minutes=None,
    fallback_distance_km=0,
    fallback_duration_minutes=0,
    is_ride: bool = False,
    estimated_fares: Optional[Dict[str, Decimal]] = None,
) -> FinalFare:
    """
    Recompute fare and commission at completion.

    Rides are re-priced from actual distance/duration when supplied, keeping
    the surge multiplier that was locked in at request time. Other bookings
    keep the estimated total; only the commission is recomputed, per provider,
    on that provider's quoted fare (``estimated_fares`` keyed by kind).
    """
    from .commission import commission_rate_for

    multiplier = to_decimal(surge_multiplier or 1)
    estimated = round_money(estimated_total)

    reprice = is_ride and (actual_distance_km is not None or actual_duration_minutes is not None)
    distance = actual_distance_km if actual_distance_km is not None else fallback_distance_km
    duration = actual_duration_minutes if actual_duration_minutes is not None else fallback_duration_minutes

    final = Decimal("0")
    commission = Decimal("0")
    fee = Decimal("0")
    if reprice:
        for provider in providers:
            subtotal = (
                to_decimal(provider.base_rate)
                + to_decimal(distance) * to_decimal(provider.per_km_rate)
                + to_decimal(duration) * to_decimal(provider.per_minute_rate)
            )
            fare = subtotal * multiplier
            part_fee = fare * get_setting("RIDE_PLATFORM_FEE_RATE")
            fee += part_fee
            final += fare + part_fee
            commission += fare * commission_rate_for(provider)
    else:
        # Split the agreed total back into fare/fee before taking commission
        fee_rate = get_setting("RIDE_PLATFORM_FEE_RATE") if is_ride else Decimal("0")
        fare_total = to_decimal(estimated_total) / (1 + fee_rate)
        fee = to_decimal(estimated_total) - fare_total
        final = to_decimal(estimated_total)
        estimated_fares = estimated_fares or {}
        share = fare_total / len(providers) if providers else Decimal("0")
        for provider in providers:
            part = estimated_fares.get(str(provider.kind))
            part = to_decimal(part) if part is not None else share
            commission += part * commission_rate_for(provider)

    final = round_money(final)
    variance = final - estimated
    percentage = None
    if estimated > 0:
        percentage = round_money(variance / estimated * 100)

    logger.debug("Final fare %s (estimated %s, variance %s)", final, estimated, variance)
    return FinalFare(
        estimated=estimated,
        final=final,
        variance=variance,
        variance_percentage=percentage,
        commission=round_money(commission),
        platform_fee=round_money(fee),
    )
