"""
Priority scoring for cargo waiting in the warehouse.

Each item gets an additive score; higher scores are loaded first:

    urgent                      +1000
    carry-over from last run     +800
    time limit                   +200 .. +600 (closer deadline, more points)
    customer tier                 tier weight x 50
    days since arrival            +0 .. +30

The arrival bonus is capped so that it can never lift an item over a
higher tier. Scoring depends only on the cargo and the injected `now`.
"""

import math
from datetime import date, datetime, time, timedelta

from cargoloader.models import CargoItem, CustomerTier

URGENT_BONUS = 1000
CARRY_OVER_BONUS = 800
CUSTOMER_TIER_MULTIPLIER = 50
MAX_ARRIVAL_BONUS = 30

CUSTOMER_TIER_WEIGHTS = {
    CustomerTier.LARGE: 3,
    CustomerTier.MEDIUM: 2,
    CustomerTier.SMALL: 1,
    CustomerTier.NONE: 0,
}

# (days until deadline, inclusive upper bound) -> bonus. Overdue is <= 0.
DEADLINE_BONUSES = [
    (0, 600),
    (1, 500),
    (3, 400),
    (7, 300),
]
DISTANT_DEADLINE_BONUS = 200

ONE_DAY = timedelta(days=1)


def _as_datetime(value, tzinfo=None) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min, tzinfo=tzinfo)


def days_until_deadline(deadline: date, now) -> int:
    """Whole days left before the deadline, rounded up. Zero or less means overdue."""
    now_dt = _as_datetime(now)
    return math.ceil((_as_datetime(deadline, now_dt.tzinfo) - now_dt) / ONE_DAY)


def deadline_bonus(cargo: CargoItem, now) -> int:
    if not cargo.has_time_limit:
        return 0
    days_left = days_until_deadline(cargo.time_limit_date, now)
    for upper, bonus in DEADLINE_BONUSES:
        if days_left <= upper:
            return bonus
    return DISTANT_DEADLINE_BONUS


def arrival_bonus(cargo: CargoItem, now) -> int:
    now_dt = _as_datetime(now)
    days_waiting = math.floor((now_dt - _as_datetime(cargo.arrival_date, now_dt.tzinfo)) / ONE_DAY)
    return max(0, min(days_waiting, MAX_ARRIVAL_BONUS))


def score_cargo(cargo: CargoItem, now) -> int:
    score = 0
    if cargo.urgent:
        score += URGENT_BONUS
    if cargo.is_carry_over:
        score += CARRY_OVER_BONUS
    score += deadline_bonus(cargo, now)
    score += CUSTOMER_TIER_WEIGHTS[cargo.customer_tier] * CUSTOMER_TIER_MULTIPLIER
    score += arrival_bonus(cargo, now)
    return score


def rank_cargo(cargo_items, now) -> list[CargoItem]:
    """
    Loading order: highest score first. Equal scores go to the earliest
    arrival, then to the caller's input order.
    """
    keyed = [
        (-score_cargo(cargo, now), cargo.arrival_date, index, cargo)
        for index, cargo in enumerate(cargo_items)
    ]
    keyed.sort(key=lambda entry: entry[:3])
    return [entry[3] for entry in keyed]
