"""Passive earnings since the last claim, capped by the storage tier."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

SECONDS_PER_HOUR = Decimal(3600)


@dataclass(frozen=True)
class AccrualResult:
    earned: int
    hours_passed: float
    capped_hours: float
    storage_full: bool


def accrue(
    last_claim: datetime,
    now: datetime,
    hourly_rate: int,
    storage_max_hours: float,
) -> AccrualResult:
    """Compute coins earned between ``last_claim`` and ``now``.

    Elapsed time is capped at ``storage_max_hours``; once the cap is reached
    ``storage_full`` is set and further time earns nothing until a claim.
    Clock skew (``now`` before ``last_claim``) earns zero.
    """
    delta = now - last_claim
    seconds = Decimal(delta.days * 86_400 + delta.seconds) + Decimal(delta.microseconds) / Decimal(1_000_000)
    if seconds <= 0:
        return AccrualResult(earned=0, hours_passed=0.0, capped_hours=0.0, storage_full=False)

    hours = seconds / SECONDS_PER_HOUR
    cap = Decimal(str(storage_max_hours))
    capped = min(hours, cap)
    earned = math.floor(Decimal(max(0, hourly_rate)) * capped)
    return AccrualResult(
        earned=earned,
        hours_passed=float(hours),
        capped_hours=float(capped),
        storage_full=hours >= cap,
    )
