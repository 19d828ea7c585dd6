"""
Cancellation fee policies

A policy only decides the fee for a late cancellation (one made after the
cancellation deadline). Early cancellations and clinic-side reasons never
reach a policy. The active policy is chosen by CANCELLATION_FEE_POLICY.
"""

import logging
from typing import Optional

from ...config import (
    CANCELLATION_FEE_FLAT,
    CANCELLATION_FEE_POLICY,
    CANCELLATION_FEE_RATE,
    CANCELLATION_FEE_TIERS,
)
from ...models import Service

logger = logging.getLogger(__name__)


class FeePolicy:
    name = "base"

    def fee(self, original_amount: float, hours_before_start: float, service: Optional[Service] = None) -> float:
        raise NotImplementedError

    def __call__(self, original_amount: float, hours_before_start: float, service: Optional[Service] = None) -> float:
        amount = self.fee(original_amount, hours_before_start, service)
        return round(min(max(0.0, amount), original_amount), 2)


class NoFeePolicy(FeePolicy):
    name = "none"

    def fee(self, original_amount, hours_before_start, service=None):
        return 0.0


class FlatFeePolicy(FeePolicy):
    name = "flat"

    def __init__(self, amount: float = CANCELLATION_FEE_FLAT):
        self.amount = amount

    def fee(self, original_amount, hours_before_start, service=None):
        return self.amount


class ProportionalFeePolicy(FeePolicy):
    name = "proportional"

    def __init__(self, rate: float = CANCELLATION_FEE_RATE):
        self.rate = rate

    def fee(self, original_amount, hours_before_start, service=None):
        return original_amount * self.rate


class TieredFeePolicy(FeePolicy):
    """Rate picked by how many hours were left before the appointment"""

    name = "tiered"

    def __init__(self, tiers: list[tuple[float, float]]):
        if not tiers:
            raise ValueError("Tiered fee policy needs at least one tier")
        # Highest threshold first
        self.tiers = sorted(tiers, key=lambda tier: tier[0], reverse=True)

    def rate_for(self, hours_before_start: float) -> float:
        for min_hours, rate in self.tiers:
            if hours_before_start >= min_hours:
                return rate
        return self.tiers[-1][1]

    def fee(self, original_amount, hours_before_start, service=None):
        return original_amount * self.rate_for(hours_before_start)


class ServiceFeePolicy(FeePolicy):
    """The service's own cancellation fee, else a share of the amount paid"""

    name = "service"

    def __init__(self, fallback_rate: float = CANCELLATION_FEE_RATE):
        self.fallback = ProportionalFeePolicy(fallback_rate)

    def fee(self, original_amount, hours_before_start, service=None):
        if service is not None and service.cancellation_fee:
            return float(service.cancellation_fee)
        return self.fallback.fee(original_amount, hours_before_start, service)


def parse_tiers(raw: str) -> list[tuple[float, float]]:
    """
    Parse "hours:rate" pairs separated by commas.

    Example:
        "12:0.5,0:1.0" -> [(12.0, 0.5), (0.0, 1.0)]
    """
    tiers = []
    for chunk in (raw or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        hours, _, rate = chunk.partition(":")
        try:
            tiers.append((float(hours), float(rate)))
        except ValueError:
            raise ValueError(f"Invalid fee tier {chunk!r} (expected hours:rate)")
    return tiers


def build_fee_policy(name: Optional[str] = None) -> FeePolicy:
    name = (name or CANCELLATION_FEE_POLICY).lower()
    if name == "none":
        return NoFeePolicy()
    if name == "flat":
        return FlatFeePolicy()
    if name == "proportional":
        return ProportionalFeePolicy()
    if name == "tiered":
        return TieredFeePolicy(parse_tiers(CANCELLATION_FEE_TIERS))
    if name == "service":
        return ServiceFeePolicy()

    logger.warning(f"⚠️ Unknown cancellation fee policy {name!r}, falling back to 'service'")
    return ServiceFeePolicy()
