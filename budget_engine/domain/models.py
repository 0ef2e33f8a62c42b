"""Domain models - pure Python dataclasses representing budget entities"""

from dataclasses import dataclass, fields
from datetime import date, datetime
from typing import Any, Dict, Optional, Type

INCOMES = "incomes"
EXPENSES = "expenses"
GOALS = "goals"
SAVINGS = "savings"
ALLOCATIONS = "goal_savings_allocations"


@dataclass(frozen=True)
class ScenarioContext:
    """User-owned budget plan the aggregations are scoped to"""

    id: str
    user_id: str
    base_currency: Optional[str] = None  # set once during onboarding


@dataclass
class Scenario:
    """Stored scenario row"""

    id: str
    user_id: str
    slug: str
    name: Optional[str]
    base_currency: Optional[str]
    created_at: datetime

    def to_context(self) -> ScenarioContext:
        return ScenarioContext(id=self.id, user_id=self.user_id, base_currency=self.base_currency)


@dataclass
class FinancialRecord:
    """Fields shared by every scenario-scoped financial record"""

    id: str
    user_id: str
    scenario_id: str
    created_at: datetime
    currency: Optional[str]


@dataclass
class Income(FinancialRecord):
    """Recurring income"""

    amount: Optional[float]
    type: str
    frequency: str = "monthly"  # "monthly" or "annual"
    payment_day: Optional[str] = None


@dataclass
class Expense(FinancialRecord):
    """Recurring expense"""

    amount: Optional[float]
    type: str
    frequency: str = "monthly"  # "monthly" or "annual"


@dataclass
class Goal(FinancialRecord):
    """Savings target with an optional deadline"""

    target_amount: Optional[float]
    name: str = ""
    current_amount: Optional[float] = None
    target_date: Optional[date] = None


@dataclass
class Savings(FinancialRecord):
    """Deposited principal, optionally earning compound interest"""

    amount: Optional[float]
    comment: str = ""
    interest_rate: Optional[float] = None  # annual, in percent
    capitalization_period: Optional[str] = None  # "monthly" | "quarterly" | "annual"
    deposit_date: Optional[datetime] = None


@dataclass
class GoalSavingsAllocation:
    """Savings funds earmarked toward a goal"""

    id: str
    goal_id: str
    savings_id: str
    amount_used: float
    currency: str
    created_at: datetime


@dataclass(frozen=True)
class ConversionItem:
    """Amount to normalize into a target currency, tagged with its record id"""

    id: str
    amount: Any
    currency: Any


@dataclass
class FinancialSummary:
    """Consolidated monthly figures for a scenario in its base currency"""

    income: float
    expense: float
    goal: float
    savings: float
    balance: float


RECORD_TYPES: Dict[str, Type[FinancialRecord]] = {
    INCOMES: Income,
    EXPENSES: Expense,
    GOALS: Goal,
    SAVINGS: Savings,
}


def record_field_names(record_cls: type) -> set[str]:
    """Names of the dataclass fields a record type accepts"""
    return {f.name for f in fields(record_cls)}
