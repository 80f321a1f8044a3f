"""Subscription billing window arithmetic.

All arithmetic is elapsed-day arithmetic on UTC datetimes, so month and year
rollover come from `timedelta` and there is no daylight-saving ambiguity.
"""

import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

SUBSCRIPTION_DAYS = 30
GRACE_DAYS = 1
SCHEDULE_HOUR = 10


@dataclass(frozen=True)
class BillingWindow:
    """Active period, grace deadline and next charge time for one payment."""

    start_at: datetime
    end_at: datetime
    end_grace_at: datetime
    next_schedule_at: datetime


def compute_billing_window(now: datetime, rng: random.Random | None = None) -> BillingWindow:
    """Derive the billing window starting at `now`.

    The next charge lands on the calendar day after `end_at` at a random minute
    between 10:00 and 10:59 UTC. `rng` is the only non-deterministic input.
    """

    rng = rng or random.Random()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    start_at = now.astimezone(timezone.utc)
    end_at = start_at + timedelta(days=SUBSCRIPTION_DAYS)
    end_grace_at = end_at + timedelta(days=GRACE_DAYS)
    next_schedule_at = (end_at + timedelta(days=1)).replace(
        hour=SCHEDULE_HOUR,
        minute=rng.randrange(60),
        second=0,
        microsecond=0,
    )
    return BillingWindow(
        start_at=start_at,
        end_at=end_at,
        end_grace_at=end_grace_at,
        next_schedule_at=next_schedule_at,
    )
