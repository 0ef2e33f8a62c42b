"""Scenario-wide financial summary"""

import asyncio
from typing import Callable, Optional

from budget_engine.domain.models import FinancialSummary
from budget_engine.engine.aggregators import (
    ExpenseAggregator,
    GoalAggregator,
    IncomeAggregator,
    SavingsAggregator,
)
from budget_engine.engine.keys import scope_pattern


class SummaryAggregator:
    """
    Combines the four entity totals into one FinancialSummary.

    Requirements:
    - income and expense are monthly-normalized totals in the base currency
    - goal is the sum of required monthly goal payments, converted
    - savings is the total with accrued interest, converted
    - balance = income - expense - goal (savings are reported, not subtracted)
    """

    def __init__(
        self,
        incomes: IncomeAggregator,
        expenses: ExpenseAggregator,
        goals: GoalAggregator,
        savings: SavingsAggregator,
    ):
        self.incomes = incomes
        self.expenses = expenses
        self.goals = goals
        self.savings = savings

    def summary(self) -> FinancialSummary:
        income = self.incomes.total()
        expense = self.expenses.total()
        goal = self.goals.total_monthly_payments()
        return FinancialSummary(
            income=income,
            expense=expense,
            goal=goal,
            savings=self.savings.total_with_interest(),
            balance=income - expense - goal,
        )

    async def refresh(self) -> FinancialSummary:
        await asyncio.gather(
            self.incomes.refresh(),
            self.expenses.refresh(),
            self.goals.refresh(),
            self.savings.refresh(),
        )
        return self.summary()

    def watch(self, callback: Callable[[FinancialSummary], None]) -> Callable[[], None]:
        """
        Push a new summary to `callback` whenever a cached input of this
        scenario changes the result. Returns the unsubscribe function.
        """
        context = self.incomes.context
        last: Optional[FinancialSummary] = None

        def on_change(key, entry) -> None:
            nonlocal last
            current = self.summary()
            if current != last:
                last = current
                callback(current)

        return self.goals.cache.subscribe(scope_pattern(context.user_id, context.id), on_change)
