"""Goal amortization - monthly payment needed to reach a goal on time"""

from typing import Dict, Iterable, List, Optional

from budget_engine.domain.models import Goal, GoalSavingsAllocation
from budget_engine.utils.date_utils import DateLike, months_between
from budget_engine.utils.money import ceil_to, coerce_decimal


def total_months(created_at: DateLike, target_date: DateLike) -> int:
    """Whole calendar months between creation and target date, at least 1"""
    return max(1, months_between(created_at, target_date))


def allocated_amount(goal: Goal, allocations: Iterable[GoalSavingsAllocation]) -> float:
    """
    Savings already earmarked for this goal.

    Only allocations in the goal's own currency count; allocations in any other
    currency are ignored rather than converted.
    """
    return sum(
        a.amount_used or 0
        for a in allocations
        if a.goal_id == goal.id and a.currency == goal.currency
    )


def monthly_payment(goal: Goal, allocations: Iterable[GoalSavingsAllocation]) -> float:
    """
    Monthly contribution required to reach the goal by its target date.

    Requirements:
    - No target date → 0
    - Remaining = max(0, target - same-currency allocations)
    - Payment = remaining / months, rounded UP to the cent

    Example:
        target 1200, created 2024-01-01, due 2024-07-01, nothing allocated
        → 6 months → 200.00
    """
    if goal.target_date is None:
        return 0.0

    remaining = max(
        coerce_decimal(0),
        coerce_decimal(goal.target_amount) - coerce_decimal(allocated_amount(goal, allocations)),
    )
    months = total_months(goal.created_at, goal.target_date)
    return ceil_to(remaining / months, 2)


def monthly_payments(
    goals: Iterable[Goal],
    allocations: Iterable[GoalSavingsAllocation],
) -> Dict[str, float]:
    """Monthly payment per goal id, each in the goal's own currency"""
    allocation_list: List[GoalSavingsAllocation] = list(allocations)
    return {goal.id: monthly_payment(goal, allocation_list) for goal in goals}


def available_amount(
    savings_id: Optional[str],
    total_amount: float,
    currency: str,
    allocations: Optional[Iterable[GoalSavingsAllocation]],
    exclude_goal_id: Optional[str] = None,
) -> float:
    """
    Part of a savings balance not yet earmarked by other goals.

    `exclude_goal_id` leaves out the goal currently being edited so that its
    own allocation does not count against it.
    """
    if not savings_id or allocations is None:
        return total_amount

    used = sum(
        a.amount_used or 0
        for a in allocations
        if a.savings_id == savings_id
        and a.currency == currency
        and (exclude_goal_id is None or a.goal_id != exclude_goal_id)
    )
    return max(0, total_amount - used)
