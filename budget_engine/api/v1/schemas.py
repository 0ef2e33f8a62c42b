"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field, field_validator
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional, Type

from budget_engine.domain.models import EXPENSES, GOALS, INCOMES, SAVINGS

Frequency = Literal["monthly", "annual"]
CapitalizationPeriod = Literal["monthly", "quarterly", "annual"]


def normalize_currency(value: Optional[str]) -> Optional[str]:
    """Upper-case 3-letter ISO 4217 code"""
    if value is None:
        return None
    normalized = value.strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError("Currency must be a 3-letter ISO 4217 code.")
    return normalized


class RecordPayload(BaseModel):
    """Fields shared by every record payload"""

    currency: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, value: Optional[str]) -> Optional[str]:
        return normalize_currency(value)


class IncomeCreate(RecordPayload):
    """Request body for POST /v1/scenarios/{id}/incomes"""

    currency: str
    amount: float = Field(..., ge=0)
    type: str = Field(..., min_length=1)
    frequency: Frequency = "monthly"
    payment_day: Optional[str] = None


class IncomeUpdate(RecordPayload):
    amount: Optional[float] = Field(None, ge=0)
    type: Optional[str] = Field(None, min_length=1)
    frequency: Optional[Frequency] = None
    payment_day: Optional[str] = None


class ExpenseCreate(RecordPayload):
    """Request body for POST /v1/scenarios/{id}/expenses"""

    currency: str
    amount: float = Field(..., ge=0)
    type: str = Field(..., min_length=1)
    frequency: Frequency = "monthly"


class ExpenseUpdate(RecordPayload):
    amount: Optional[float] = Field(None, ge=0)
    type: Optional[str] = Field(None, min_length=1)
    frequency: Optional[Frequency] = None


class GoalCreate(RecordPayload):
    """Request body for POST /v1/scenarios/{id}/goals"""

    currency: str
    name: str = Field(..., min_length=1)
    target_amount: float = Field(..., gt=0)
    current_amount: Optional[float] = Field(None, ge=0)
    target_date: Optional[date] = None


class GoalUpdate(RecordPayload):
    name: Optional[str] = Field(None, min_length=1)
    target_amount: Optional[float] = Field(None, gt=0)
    current_amount: Optional[float] = Field(None, ge=0)
    target_date: Optional[date] = None


class SavingsCreate(RecordPayload):
    """Request body for POST /v1/scenarios/{id}/savings"""

    currency: str
    amount: float = Field(..., ge=0)
    comment: str = ""
    interest_rate: Optional[float] = Field(None, ge=0, description="Annual rate in percent")
    capitalization_period: Optional[CapitalizationPeriod] = None
    deposit_date: Optional[datetime] = None


class SavingsUpdate(RecordPayload):
    amount: Optional[float] = Field(None, ge=0)
    comment: Optional[str] = None
    interest_rate: Optional[float] = Field(None, ge=0)
    capitalization_period: Optional[CapitalizationPeriod] = None
    deposit_date: Optional[datetime] = None


CREATE_SCHEMAS: Dict[str, Type[RecordPayload]] = {
    INCOMES: IncomeCreate,
    EXPENSES: ExpenseCreate,
    GOALS: GoalCreate,
    SAVINGS: SavingsCreate,
}

UPDATE_SCHEMAS: Dict[str, Type[RecordPayload]] = {
    INCOMES: IncomeUpdate,
    EXPENSES: ExpenseUpdate,
    GOALS: GoalUpdate,
    SAVINGS: SavingsUpdate,
}


class ScenarioResponse(BaseModel):
    """Single scenario in GET /v1/scenarios"""

    id: str
    slug: str
    name: Optional[str] = None
    base_currency: Optional[str] = None
    created_at: datetime


class ScenarioUpdate(BaseModel):
    """Request body for PATCH /v1/scenarios/{id}"""

    base_currency: str

    @field_validator("base_currency")
    @classmethod
    def validate_base_currency(cls, value: str) -> str:
        return normalize_currency(value)


class ScenarioListResponse(BaseModel):
    user_id: str
    scenarios: List[ScenarioResponse]


class RecordListResponse(BaseModel):
    """Response for GET /v1/scenarios/{id}/{entity}"""

    entity_type: str
    status: str
    base_currency: Optional[str] = None
    records: List[Dict[str, Any]]
    total: float
    totals: Dict[str, float] = {}
    display_currency: Optional[str] = None
    display_amounts: Dict[str, float] = {}
    error: Optional[str] = None


class RecordResponse(BaseModel):
    """Response for POST/PATCH of a single record"""

    entity_type: str
    record: Dict[str, Any]


class SummaryResponse(BaseModel):
    """Response for GET /v1/scenarios/{id}/summary"""

    scenario_id: str
    base_currency: Optional[str] = None
    income: float
    expense: float
    goal: float
    savings: float
    balance: float


class GoalPaymentsResponse(BaseModel):
    """Response for GET /v1/scenarios/{id}/goals/payments"""

    scenario_id: str
    base_currency: Optional[str] = None
    payments: Dict[str, float]
    total: float
