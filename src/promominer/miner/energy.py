"""Energy regeneration.

Energy regenerates in whole ticks. The last-update timestamp only advances by
the time those ticks consumed, so the partial progress toward the next tick
carries over between calls. Moving it to ``now`` on every read would make
frequent pollers regenerate slower than idle players.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta


def regenerate(
    energy: int,
    max_energy: int,
    last_update: datetime,
    rate: int,
    interval_seconds: int,
    now: datetime,
) -> tuple[int, datetime]:
    """Return (new_energy, new_last_update) after applying elapsed regen ticks.

    Args:
        energy: Energy at ``last_update``.
        max_energy: Upper bound.
        last_update: When ``energy`` was last brought up to date.
        rate: Energy gained per tick.
        interval_seconds: Tick length.
        now: Current time.

    Returns:
        Energy clamped to [0, max_energy] and the timestamp advanced by whole ticks.
    """
    if interval_seconds <= 0:
        msg = "interval_seconds must be positive"
        raise ValueError(msg)

    elapsed = (now - last_update).total_seconds()
    ticks = int(elapsed // interval_seconds) if elapsed > 0 else 0

    new_energy = min(max_energy, max(0, energy) + ticks * max(0, rate))
    new_last_update = last_update + timedelta(seconds=ticks * interval_seconds)
    return new_energy, new_last_update


def seconds_until_next_tick(last_update: datetime, interval_seconds: int, now: datetime) -> int:
    """Seconds until the next tick lands (for the client countdown)."""
    elapsed = (now - last_update).total_seconds()
    if elapsed < 0:
        return interval_seconds
    remaining = interval_seconds - (elapsed % interval_seconds)
    return math.ceil(remaining)
