"""SQLAlchemy ORM models for scenarios and their financial records"""

import uuid
from sqlalchemy import Column, String, Float, DateTime, Date, ForeignKey, Text
from sqlalchemy.orm import declarative_base

from budget_engine.utils.date_utils import utcnow

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


class ScenarioRow(Base):
    """User-owned budget plan"""

    __tablename__ = "scenario"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    slug = Column(Text, nullable=False)
    name = Column(Text, nullable=True)
    base_currency = Column(String(3), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class IncomeRow(Base):
    """Recurring income"""

    __tablename__ = "income"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    scenario_id = Column(String(36), ForeignKey("scenario.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Float, nullable=True)
    currency = Column(String(3), nullable=True)
    type = Column(Text, nullable=False)
    frequency = Column(Text, nullable=False, default="monthly")
    payment_day = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class ExpenseRow(Base):
    """Recurring expense"""

    __tablename__ = "expense"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    scenario_id = Column(String(36), ForeignKey("scenario.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Float, nullable=True)
    currency = Column(String(3), nullable=True)
    type = Column(Text, nullable=False)
    frequency = Column(Text, nullable=False, default="monthly")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class GoalRow(Base):
    """Savings target"""

    __tablename__ = "goal"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    scenario_id = Column(String(36), ForeignKey("scenario.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(Text, nullable=False, default="")
    target_amount = Column(Float, nullable=True)
    current_amount = Column(Float, nullable=True)
    currency = Column(String(3), nullable=True)
    target_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class SavingsRow(Base):
    """Deposit, optionally earning compound interest"""

    __tablename__ = "savings"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    scenario_id = Column(String(36), ForeignKey("scenario.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Float, nullable=True)
    currency = Column(String(3), nullable=True)
    comment = Column(Text, nullable=False, default="")
    interest_rate = Column(Float, nullable=True)
    capitalization_period = Column(Text, nullable=True)
    deposit_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class GoalSavingsAllocationRow(Base):
    """Savings funds earmarked toward a goal"""

    __tablename__ = "goal_savings_allocation"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    scenario_id = Column(String(36), ForeignKey("scenario.id", ondelete="CASCADE"), nullable=False, index=True)
    goal_id = Column(String(36), ForeignKey("goal.id", ondelete="CASCADE"), nullable=False)
    savings_id = Column(String(36), ForeignKey("savings.id", ondelete="CASCADE"), nullable=False)
    amount_used = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
