"""Compound interest projection for interest-bearing savings"""

from datetime import datetime
from typing import Optional

from budget_engine.domain.models import Savings
from budget_engine.utils.date_utils import DateLike, as_utc_datetime, utcnow
from budget_engine.utils.money import round_half_up

DAYS_PER_YEAR = 365.25
SECONDS_PER_YEAR = DAYS_PER_YEAR * 24 * 60 * 60

COMPOUNDINGS_PER_YEAR = {
    "monthly": 12,
    "quarterly": 4,
    "annual": 1,
}


def compoundings_per_year(period: Optional[str]) -> int:
    """Number of capitalizations per year (unknown periods compound once a year)"""
    return COMPOUNDINGS_PER_YEAR.get(period or "", 1)


def compound_amount(
    principal: float,
    annual_rate_percent: float,
    capitalization_period: Optional[str],
    years: float,
) -> float:
    """
    Final balance after compounding: A = P(1 + r/n)^(nt).

    Rounded to 2 decimals. A non-positive duration leaves the principal untouched.
    """
    if years <= 0:
        return principal

    rate = annual_rate_percent / 100
    n = compoundings_per_year(capitalization_period)
    amount = principal * (1 + rate / n) ** (n * years)
    return round_half_up(amount, 2)


def interest_earned(
    principal: float,
    annual_rate_percent: float,
    capitalization_period: Optional[str],
    years: float,
) -> float:
    """Interest part of the compounded balance, rounded to 2 decimals"""
    total = compound_amount(principal, annual_rate_percent, capitalization_period, years)
    return round_half_up(total - principal, 2)


def elapsed_years(start: DateLike, now: DateLike) -> float:
    """Fractional years between two instants using a 365.25-day year"""
    delta = as_utc_datetime(now) - as_utc_datetime(start)
    return delta.total_seconds() / SECONDS_PER_YEAR


def interest_since(
    principal: float,
    annual_rate_percent: float,
    capitalization_period: Optional[str],
    start: DateLike,
    now: DateLike,
) -> float:
    """
    Interest accrued on a deposit from `start` until `now`.

    Deterministic in its inputs: callers pass `now` explicitly.

    Example:
        1000 at 12% compounded monthly for exactly one year
        → 1000 × 1.01^12 = 1126.83 → interest 126.83
    """
    years = elapsed_years(start, now)
    if years <= 0:
        return 0.0
    return interest_earned(principal, annual_rate_percent, capitalization_period, years)


def amount_with_interest(savings: Savings, now: Optional[datetime] = None) -> float:
    """
    Principal plus interest accrued so far.

    Interest only applies when both a rate and a capitalization period are set;
    the accrual starts at the deposit date, falling back to the creation time.
    Recomputed on every call, never stored.
    """
    principal = savings.amount or 0
    if not savings.interest_rate or not savings.capitalization_period:
        return principal

    start = savings.deposit_date or savings.created_at
    if start is None:
        return principal

    interest = interest_since(
        principal,
        savings.interest_rate,
        savings.capitalization_period,
        start,
        now or utcnow(),
    )
    return principal + interest
