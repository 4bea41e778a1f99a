"""Platform commission rates by provider kind, verification and subscription."""

from decimal import Decimal
from typing import Optional

from providers.models import ProviderKind
from services.config import get_setting


def commission_rate(kind: str, verified: bool = True, subscription_tier: Optional[str] = None) -> Decimal:
    """
    Commission rate for one provider.

    Guides pay 10% when verified and 15% otherwise; drivers pay 5%.
    A subscription tier with its own rate can only lower the result.
    """
    if kind == ProviderKind.GUIDE:
        if verified:
            rate = get_setting("GUIDE_COMMISSION_VERIFIED")
        else:
            rate = get_setting("GUIDE_COMMISSION_UNVERIFIED")
    elif kind == ProviderKind.DRIVER:
        rate = get_setting("DRIVER_COMMISSION_STANDARD")
    else:
        raise ValueError(f"Unknown provider kind: {kind!r}")

    tier_rate = get_setting("SUBSCRIPTION_COMMISSION_RATES").get(subscription_tier or "")
    if tier_rate is not None:
        rate = min(rate, Decimal(str(tier_rate)))
    return rate


def commission_rate_for(provider) -> Decimal:
    return commission_rate(provider.kind, provider.is_verified, provider.subscription_tier)
